"""
CV data decoding and field resolution.
"""

# Standard Library
import dataclasses
import datetime
import pathlib

# PIP3 modules
import yaml

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.errors
import cv_typesetter.style_lib


FieldRef = cvt.style_lib.FieldRef
DataFormatError = cvt.errors.DataFormatError
FieldTypeMismatch = cvt.errors.FieldTypeMismatch
MissingRequiredField = cvt.errors.MissingRequiredField
InternalConsistencyFault = cvt.errors.InternalConsistencyFault

SCALAR = "scalar"
LIST = "list"
ENTRIES = "entries"


@dataclasses.dataclass(frozen=True)
class HistoryEntry:
	year: str = ""
	month: str = ""
	value: str = ""


@dataclasses.dataclass(frozen=True)
class FieldValue:
	kind: str
	text: str = ""
	items: tuple[str, ...] = ()
	entries: tuple[HistoryEntry, ...] = ()


@dataclasses.dataclass(frozen=True)
class DataRecord:
	fields: dict[str, FieldValue]


#============================================
def to_text(value: object) -> str:
	"""
	Convert a decoded YAML scalar to display text.

	Args:
		value: Scalar from yaml.safe_load.

	Returns:
		Text with tabs expanded to spaces.
	"""
	if value is None:
		return ""
	if isinstance(value, bool):
		return "true" if value else "false"
	if isinstance(value, (datetime.date, datetime.datetime)):
		return value.isoformat()
	return str(value).replace("\t", " ")


#============================================
def build_entry(name: str, item: object) -> HistoryEntry:
	"""
	Build one history row from a list element.

	Args:
		name: Field name for error messages.
		item: Mapping with year/month/value keys or a scalar.

	Returns:
		HistoryEntry.
	"""
	if isinstance(item, dict):
		return HistoryEntry(
			year=to_text(item.get("year")),
			month=to_text(item.get("month")),
			value=to_text(item.get("value")),
		)
	if isinstance(item, list):
		raise DataFormatError(f"field '{name}' contains a nested list")
	return HistoryEntry(value=to_text(item))


#============================================
def build_field_value(name: str, value: object) -> FieldValue:
	"""
	Convert a decoded YAML value into a FieldValue.

	Args:
		name: Field name for error messages.
		value: Decoded value (not a mapping).

	Returns:
		FieldValue.
	"""
	if isinstance(value, list):
		if any(isinstance(item, dict) for item in value):
			entries = tuple(build_entry(name, item) for item in value)
			return FieldValue(kind=ENTRIES, entries=entries)
		items: list[str] = []
		for item in value:
			if isinstance(item, list):
				raise DataFormatError(f"field '{name}' contains a nested list")
			items.append(to_text(item))
		return FieldValue(kind=LIST, items=tuple(items))
	return FieldValue(kind=SCALAR, text=to_text(value))


#============================================
def flatten_mapping(mapping: dict, prefix: str, fields: dict[str, FieldValue]) -> None:
	"""
	Flatten nested mappings into dotted field names.

	Args:
		mapping: Decoded mapping.
		prefix: Dotted prefix for nested keys.
		fields: Output field table.
	"""
	for key, value in mapping.items():
		name = f"{prefix}{key}"
		if value is None:
			continue
		if isinstance(value, dict):
			flatten_mapping(value, f"{name}.", fields)
			continue
		fields[name] = build_field_value(name, value)


#============================================
def build_data_record(document: object) -> DataRecord:
	"""
	Build a DataRecord from a decoded YAML document.

	Args:
		document: Output of yaml.safe_load.

	Returns:
		DataRecord.
	"""
	if document is None:
		document = {}
	if not isinstance(document, dict):
		raise DataFormatError("data document must be a mapping of field names to values")
	fields: dict[str, FieldValue] = {}
	flatten_mapping(document, "", fields)
	return DataRecord(fields=fields)


#============================================
def load_data_record(path: pathlib.Path) -> DataRecord:
	"""
	Read a YAML data file into a DataRecord.

	Args:
		path: YAML file path.

	Returns:
		DataRecord.
	"""
	with path.open("r", encoding="utf-8") as handle:
		try:
			document = yaml.safe_load(handle)
		except yaml.YAMLError as error:
			raise DataFormatError(f"cannot decode {path}: {error}") from error
	return build_data_record(document)


#============================================
def empty_value(expected: str) -> FieldValue:
	return FieldValue(kind=expected)


class DataResolver:
	"""
	Resolve field references against one DataRecord.
	"""

	def __init__(self, record: DataRecord) -> None:
		self.record = record

	def resolve(self, ref: FieldRef, expected: str = SCALAR) -> FieldValue:
		"""
		Resolve a field reference to a value of the expected kind.

		A scalar is promoted to a one element list, and scalars or lists are
		promoted to history rows with only the value column. Collapsing a
		list to a scalar is refused.

		Args:
			ref: Field reference from a directive.
			expected: "scalar", "list" or "entries".

		Returns:
			FieldValue of the expected kind.
		"""
		if expected not in (SCALAR, LIST, ENTRIES):
			raise InternalConsistencyFault(f"unknown field kind '{expected}'")
		value = self.record.fields.get(ref.name)
		if value is None:
			if ref.optional:
				return empty_value(expected)
			raise MissingRequiredField(ref.name)
		if value.kind == expected:
			return value

		if expected == SCALAR:
			raise FieldTypeMismatch(ref.name, expected, value.kind)
		if expected == LIST:
			if value.kind == SCALAR:
				return FieldValue(kind=LIST, items=(value.text,))
			raise FieldTypeMismatch(ref.name, expected, value.kind)
		if value.kind == SCALAR:
			return FieldValue(kind=ENTRIES, entries=(HistoryEntry(value=value.text),))
		entries = tuple(HistoryEntry(value=item) for item in value.items)
		return FieldValue(kind=ENTRIES, entries=entries)

	def resolve_text(self, ref: FieldRef | None, literal: str) -> str:
		if ref is None:
			return literal
		return self.resolve(ref, SCALAR).text

	def resolve_items(self, ref: FieldRef | None, literal: str) -> tuple[str, ...]:
		if ref is None:
			return (literal,) if literal else ()
		return self.resolve(ref, LIST).items

	def resolve_entries(self, ref: FieldRef | None, literal: str) -> tuple[HistoryEntry, ...]:
		if ref is None:
			return (HistoryEntry(value=literal),) if literal else ()
		return self.resolve(ref, ENTRIES).entries
