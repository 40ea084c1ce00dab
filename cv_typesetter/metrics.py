"""
Glyph metrics for mixed Latin and Japanese text.
"""

# Standard Library
import dataclasses
import pathlib

# PIP3 modules
import reportlab.pdfbase.cidfonts
import reportlab.pdfbase.pdfmetrics
import reportlab.pdfbase.ttfonts

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.errors


InternalConsistencyFault = cvt.errors.InternalConsistencyFault
TypefaceLoadError = cvt.errors.TypefaceLoadError

BUILTIN_FACES = cvt.config.BUILTIN_FACES
BUILTIN_ALIASES = cvt.config.BUILTIN_ALIASES
BODY_TYPEFACE = cvt.config.BODY_TYPEFACE
DEFAULT_LEADING = cvt.config.DEFAULT_LEADING
PLACEHOLDER_GLYPH = cvt.config.PLACEHOLDER_GLYPH
PLACEHOLDER_ADVANCE_EM = cvt.config.PLACEHOLDER_ADVANCE_EM
points_to_mm = cvt.config.points_to_mm

LATIN = "latin"
JAPANESE = "japanese"
UNSUPPORTED = "unsupported"

JAPANESE_RANGES = (
	(0x3000, 0x303F),  # CJK symbols and punctuation
	(0x3040, 0x309F),  # hiragana
	(0x30A0, 0x30FF),  # katakana
	(0x31F0, 0x31FF),  # katakana phonetic extensions
	(0x3400, 0x4DBF),  # CJK extension A
	(0x4E00, 0x9FFF),  # CJK unified ideographs
	(0xF900, 0xFAFF),  # CJK compatibility ideographs
	(0xFF00, 0xFFEF),  # half-width and full-width forms
)


@dataclasses.dataclass(frozen=True)
class Typeface:
	alias: str
	face: str
	latin_font: str
	japanese_font: str
	leading: float = DEFAULT_LEADING


#============================================
def classify_char(char: str) -> str:
	"""
	Classify a character into a script class.

	Args:
		char: Single character.

	Returns:
		"latin", "japanese" or "unsupported".
	"""
	code = ord(char)
	for low, high in JAPANESE_RANGES:
		if low <= code <= high:
			return JAPANESE
	if char.isprintable():
		try:
			char.encode("cp1252")
		except UnicodeEncodeError:
			return UNSUPPORTED
		return LATIN
	return UNSUPPORTED


#============================================
def register_cid_font(font_name: str) -> None:
	"""
	Register a ReportLab CID font once per process.
	"""
	if font_name in reportlab.pdfbase.pdfmetrics.getRegisteredFontNames():
		return
	reportlab.pdfbase.pdfmetrics.registerFont(reportlab.pdfbase.cidfonts.UnicodeCIDFont(font_name))


#============================================
def register_ttf_font(path_text: str) -> str:
	"""
	Register a TrueType font file and return its ReportLab name.

	Args:
		path_text: Path to a .ttf file.

	Returns:
		Registered font name.
	"""
	path = pathlib.Path(path_text)
	font_name = f"TTF-{path.stem}"
	if font_name in reportlab.pdfbase.pdfmetrics.getRegisteredFontNames():
		return font_name
	try:
		font = reportlab.pdfbase.ttfonts.TTFont(font_name, str(path))
	except (OSError, reportlab.pdfbase.ttfonts.TTFError) as error:
		raise TypefaceLoadError(f"cannot load typeface '{path_text}': {error}") from error
	reportlab.pdfbase.pdfmetrics.registerFont(font)
	return font_name


#============================================
def build_typeface(alias: str, face: str) -> Typeface:
	"""
	Build a Typeface from an alias declaration.

	Args:
		alias: Typeface alias used in the style file.
		face: Built-in face name or .ttf path.

	Returns:
		Typeface.
	"""
	if face in BUILTIN_FACES:
		latin_font, japanese_font = BUILTIN_FACES[face]
		register_cid_font(japanese_font)
		return Typeface(alias=alias, face=face, latin_font=latin_font, japanese_font=japanese_font)
	font_name = register_ttf_font(face)
	return Typeface(alias=alias, face=face, latin_font=font_name, japanese_font=font_name)


class TextMetrics:
	"""
	Per-glyph advances and line heights for the typefaces of one document.

	Latin glyphs are measured with the typeface's Latin font and Japanese
	glyphs with its Japanese font. Glyphs in neither class get a one em
	placeholder advance.
	"""

	def __init__(self, typefaces: dict[str, str] | None = None) -> None:
		if typefaces is None:
			typefaces = BUILTIN_ALIASES
		self.typefaces: dict[str, Typeface] = {}
		for alias, face in typefaces.items():
			self.typefaces[alias] = build_typeface(alias, face)
		if BODY_TYPEFACE not in self.typefaces:
			self.typefaces[BODY_TYPEFACE] = build_typeface(BODY_TYPEFACE, BUILTIN_ALIASES[BODY_TYPEFACE])
		# (font name, char) -> advance in points at size 1
		self._unit_advances: dict[tuple[str, str], float] = {}

	def typeface(self, alias: str) -> Typeface:
		if alias not in self.typefaces:
			raise InternalConsistencyFault(f"typeface alias '{alias}' was never declared")
		return self.typefaces[alias]

	def classify(self, char: str) -> str:
		return classify_char(char)

	def font_for(self, char: str, typeface: Typeface) -> str:
		if classify_char(char) == LATIN:
			return typeface.latin_font
		return typeface.japanese_font

	def _unit_advance(self, font_name: str, char: str) -> float:
		key = (font_name, char)
		if key not in self._unit_advances:
			self._unit_advances[key] = reportlab.pdfbase.pdfmetrics.stringWidth(char, font_name, 1.0)
		return self._unit_advances[key]

	def measure(self, text: str, typeface: str, size: float) -> list[tuple[str, float]]:
		"""
		Measure each glyph of a text run.

		Args:
			text: Text run, possibly mixing scripts.
			typeface: Typeface alias.
			size: Font size in points.

		Returns:
			List of (glyph, advance in mm). Unsupported characters are
			returned as the placeholder glyph.
		"""
		face = self.typeface(typeface)
		glyphs: list[tuple[str, float]] = []
		for char in text:
			script = classify_char(char)
			if script == UNSUPPORTED:
				glyphs.append((PLACEHOLDER_GLYPH, points_to_mm(PLACEHOLDER_ADVANCE_EM * size)))
				continue
			font_name = face.latin_font if script == LATIN else face.japanese_font
			advance = self._unit_advance(font_name, char) * size
			glyphs.append((char, points_to_mm(advance)))
		return glyphs

	def text_width(self, text: str, typeface: str, size: float) -> float:
		"""
		Total advance of a text run in mm.
		"""
		return sum(advance for _glyph, advance in self.measure(text, typeface, size))

	def line_height(self, typeface: str, size: float) -> float:
		"""
		Line height in mm for a font size.

		The body typeface's leading is used for every typeface so mixed
		lines keep one vertical rhythm.

		Args:
			typeface: Typeface alias of the run.
			size: Font size in points.

		Returns:
			Line height in mm.
		"""
		self.typeface(typeface)
		body = self.typefaces[BODY_TYPEFACE]
		return points_to_mm(size * body.leading)

	def split_runs(self, text: str, typeface: str) -> list[tuple[str, str]]:
		"""
		Split text into runs that share one font.

		Args:
			text: Text line.
			typeface: Typeface alias.

		Returns:
			List of (font name, run text).
		"""
		face = self.typeface(typeface)
		runs: list[tuple[str, str]] = []
		for char in text:
			if classify_char(char) == UNSUPPORTED:
				font_name = face.japanese_font
				char = PLACEHOLDER_GLYPH
			else:
				font_name = self.font_for(char, face)
			if runs and runs[-1][0] == font_name:
				runs[-1] = (font_name, runs[-1][1] + char)
			else:
				runs.append((font_name, char))
		return runs

	def unsupported_chars(self, text: str) -> list[str]:
		found: list[str] = []
		for char in text:
			if classify_char(char) == UNSUPPORTED and char not in found:
				found.append(char)
		return found
