"""
Fatal error types for the typesetting pipeline.
"""


class CvTypesetterError(Exception):
	"""
	Base class for errors that abort a run.
	"""


class StyleSyntaxError(CvTypesetterError):
	"""
	Malformed style description, raised before layout begins.
	"""

	def __init__(self, line: int, column: int, cause: str, source: str = "style") -> None:
		self.line = line
		self.column = column
		self.cause = cause
		self.source = source
		super().__init__(f"{source}:{line}:{column}: {cause}")


class MissingRequiredField(CvTypesetterError):
	def __init__(self, field_name: str) -> None:
		self.field_name = field_name
		super().__init__(f"missing required field '{field_name}'")


class FieldTypeMismatch(CvTypesetterError):
	def __init__(self, field_name: str, expected: str, actual: str) -> None:
		self.field_name = field_name
		self.expected = expected
		self.actual = actual
		super().__init__(f"field '{field_name}' is a {actual} value, expected {expected}")


class DataFormatError(CvTypesetterError):
	"""
	The data document does not decode into a field mapping.
	"""


class TypefaceLoadError(CvTypesetterError):
	"""
	A typeface declared in the style file could not be loaded.
	"""


class InternalConsistencyFault(CvTypesetterError):
	"""
	An invariant between layout and emission was violated.
	"""
