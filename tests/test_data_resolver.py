import datetime
import pathlib

import pytest

import cv_typesetter.data_lib
import cv_typesetter.errors
import cv_typesetter.style_lib


build_data_record = cv_typesetter.data_lib.build_data_record
DataResolver = cv_typesetter.data_lib.DataResolver
FieldRef = cv_typesetter.style_lib.FieldRef
HistoryEntry = cv_typesetter.data_lib.HistoryEntry


#============================================
def _resolver(data: dict) -> DataResolver:
	return DataResolver(build_data_record(data))


#============================================
def test_field_kinds_and_flattening() -> None:
	"""
	Scalars, lists, history rows and nested mappings decode into fields.
	"""
	record = build_data_record(
		{
			"name": "山田 太郎",
			"age": 31,
			"married": False,
			"birth_day": datetime.date(1995, 4, 2),
			"skills": ["Python", 3],
			"education": [{"year": 2014, "month": 4, "value": "入学"}, "以上"],
			"address": {"zip": "100-0001", "line": "千代田区"},
			"fax": None,
		}
	)
	fields = record.fields
	assert fields["name"].text == "山田 太郎"
	assert fields["age"].text == "31"
	assert fields["married"].text == "false"
	assert fields["birth_day"].text == "1995-04-02"
	assert fields["skills"].kind == cv_typesetter.data_lib.LIST
	assert fields["skills"].items == ("Python", "3")
	assert fields["education"].entries == (
		HistoryEntry(year="2014", month="4", value="入学"),
		HistoryEntry(value="以上"),
	)
	assert fields["address.zip"].text == "100-0001"
	assert "fax" not in fields


#============================================
def test_tabs_become_spaces() -> None:
	record = build_data_record({"note": "a\tb"})
	assert record.fields["note"].text == "a b"


#============================================
def test_non_mapping_document_rejected() -> None:
	with pytest.raises(cv_typesetter.errors.DataFormatError):
		build_data_record(["not", "a", "mapping"])
	with pytest.raises(cv_typesetter.errors.DataFormatError):
		build_data_record({"nested": [["a"]]})


#============================================
def test_scalar_promotes_to_list_and_entries() -> None:
	resolver = _resolver({"name": "Taro"})
	ref = FieldRef(name="name")
	assert resolver.resolve(ref, "list").items == ("Taro",)
	assert resolver.resolve(ref, "entries").entries == (HistoryEntry(value="Taro"),)


#============================================
def test_list_refused_as_scalar() -> None:
	resolver = _resolver({"skills": ["a", "b"], "jobs": [{"value": "x"}]})
	with pytest.raises(cv_typesetter.errors.FieldTypeMismatch):
		resolver.resolve_text(FieldRef(name="skills"), "")
	with pytest.raises(cv_typesetter.errors.FieldTypeMismatch):
		resolver.resolve_items(FieldRef(name="jobs"), "")
	entries = resolver.resolve_entries(FieldRef(name="skills"), "")
	assert [entry.value for entry in entries] == ["a", "b"]


#============================================
def test_missing_fields() -> None:
	"""
	Missing optional fields resolve empty; missing required fields are fatal.
	"""
	resolver = _resolver({})
	assert resolver.resolve_text(FieldRef(name="fax", optional=True), "") == ""
	assert resolver.resolve_items(FieldRef(name="awards", optional=True), "") == ()
	with pytest.raises(cv_typesetter.errors.MissingRequiredField) as info:
		resolver.resolve_text(FieldRef(name="name"), "")
	assert info.value.field_name == "name"


#============================================
def test_literals_pass_through() -> None:
	resolver = _resolver({})
	assert resolver.resolve_text(None, "氏名") == "氏名"
	assert resolver.resolve_items(None, "") == ()
	assert resolver.resolve_entries(None, "以上") == (HistoryEntry(value="以上"),)


#============================================
def test_load_data_record(tmp_path: pathlib.Path) -> None:
	path = tmp_path / "data.yaml"
	path.write_text("name: 山田\nlicences:\n  - year: 2013\n    month: 12\n    value: 普通免許\n", encoding="utf-8")
	record = cv_typesetter.data_lib.load_data_record(path)
	assert record.fields["name"].text == "山田"
	assert record.fields["licences"].entries[0].month == "12"

	broken = tmp_path / "broken.yaml"
	broken.write_text("name: [unclosed\n", encoding="utf-8")
	with pytest.raises(cv_typesetter.errors.DataFormatError):
		cv_typesetter.data_lib.load_data_record(broken)
