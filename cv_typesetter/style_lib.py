"""
Style file parsing.

The style file is line oriented. Each line holds one directive: a keyword
followed by comma separated positional fields and then options written as
key=value pairs or bare flags. Boxes open with "box" and close with "end".
Lengths are millimetres, optionally suffixed with "mm".
"""

# Standard Library
import dataclasses
import math
import pathlib
import types

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.errors


PageConfig = cvt.config.PageConfig
StyleSyntaxError = cvt.errors.StyleSyntaxError

DEFAULT_FONT_SIZE = cvt.config.DEFAULT_FONT_SIZE
DEFAULT_LINE_WIDTH = cvt.config.DEFAULT_LINE_WIDTH
DEFAULT_LINE_STYLE = cvt.config.DEFAULT_LINE_STYLE
DEFAULT_TYPEFACE = cvt.config.DEFAULT_TYPEFACE
LINE_STYLES = cvt.config.LINE_STYLES
BUILTIN_FACES = cvt.config.BUILTIN_FACES
BUILTIN_ALIASES = cvt.config.BUILTIN_ALIASES
PHOTO_FIELD = cvt.config.PHOTO_FIELD
HISTORY_MONTH_X = cvt.config.HISTORY_MONTH_X
HISTORY_VALUE_X = cvt.config.HISTORY_VALUE_X

TEXT_KINDS = ("text", "list", "history")
REPEAT_MODES = ("vertical", "horizontal")


@dataclasses.dataclass(frozen=True)
class KeywordSpec:
	required: tuple[str, ...]
	optional: tuple[str, ...] = ()
	options: frozenset[str] = frozenset()
	flags: frozenset[str] = frozenset()
	variadic: bool = False


TEXT_OPTIONS = frozenset({"font_size", "typeface"})
LINE_OPTIONS = frozenset({"line_width", "line_style"})

KEYWORD_SPECS = {
	"typeface": KeywordSpec(required=("alias", "face")),
	"page": KeywordSpec(required=("width", "height"), options=frozenset({"margin"})),
	"box": KeywordSpec(
		required=("x", "y", "width"),
		optional=("height",),
		options=LINE_OPTIONS | {"padding"},
		flags=frozenset({"unsplittable"}),
	),
	"end": KeywordSpec(required=()),
	"string": KeywordSpec(
		required=("x", "y", "value"),
		options=TEXT_OPTIONS,
		flags=frozenset({"optional"}),
	),
	"text": KeywordSpec(
		required=("x", "y", "width", "value"),
		options=TEXT_OPTIONS | {"height"},
		flags=frozenset({"optional"}),
	),
	"list": KeywordSpec(
		required=("x", "y", "width", "value"),
		options=TEXT_OPTIONS | {"height", "repeat", "spacing"},
		flags=frozenset({"optional"}),
	),
	"history": KeywordSpec(
		required=("x", "y", "width", "value"),
		options=TEXT_OPTIONS | {"year_x", "month_x", "value_x", "row_height"},
		flags=frozenset({"optional"}),
	),
	"line": KeywordSpec(required=("x", "y", "dx", "dy"), options=LINE_OPTIONS),
	"multi_lines": KeywordSpec(
		required=("x", "y", "dx", "dy", "count", "step_x", "step_y"),
		options=LINE_OPTIONS,
	),
	"lines": KeywordSpec(required=("count", "x", "y"), options=LINE_OPTIONS | {"close"}, variadic=True),
	"photo": KeywordSpec(required=("x", "y", "width", "height"), optional=("value",)),
	"new_page": KeywordSpec(required=()),
}


@dataclasses.dataclass(frozen=True)
class FieldRef:
	name: str
	optional: bool = False


@dataclasses.dataclass(frozen=True)
class Directive:
	kind: str
	line: int
	parent: int | None
	children: tuple[int, ...] = ()
	x: float = 0.0
	y: float = 0.0
	width: float | None = None
	height: float | None = None
	typeface: str = DEFAULT_TYPEFACE
	font_size: float = DEFAULT_FONT_SIZE
	field: FieldRef | None = None
	literal: str = ""
	line_width: float = DEFAULT_LINE_WIDTH
	line_style: str = DEFAULT_LINE_STYLE
	padding: float = 0.0
	unsplittable: bool = False
	repeat: str = "vertical"
	spacing: float | None = None
	dx: float = 0.0
	dy: float = 0.0
	year_x: float = 0.0
	month_x: float = 0.0
	value_x: float = 0.0
	row_height: float | None = None
	points: tuple[tuple[float, float], ...] = ()
	close: bool = False


@dataclasses.dataclass(frozen=True)
class StyleDocument:
	nodes: tuple[Directive, ...]
	typefaces: types.MappingProxyType
	page: PageConfig
	source: str = "style"

	@property
	def root(self) -> Directive:
		return self.nodes[0]


@dataclasses.dataclass
class ParseState:
	source: str
	nodes: list[Directive]
	children: list[list[int]]
	stack: list[int]
	typefaces: dict[str, str]
	page: PageConfig


@dataclasses.dataclass
class SplitLine:
	keyword: str
	line: int
	positional: dict[str, tuple[str, int]]
	options: dict[str, tuple[str, int]]
	flags: set[str]
	extra: list[tuple[str, int]] = dataclasses.field(default_factory=list)


#============================================
def split_fields(line_text: str) -> list[tuple[str, int]]:
	"""
	Split a directive line on commas, keeping 1-based field columns.

	Args:
		line_text: Raw line text.

	Returns:
		List of (field text, column) tuples.
	"""
	fields: list[tuple[str, int]] = []
	start = 0
	for part in line_text.split(","):
		leading = len(part) - len(part.lstrip())
		fields.append((part.strip(), start + leading + 1))
		start += len(part) + 1
	return fields


#============================================
def split_directive(
	state: ParseState,
	fields: list[tuple[str, int]],
	line_number: int,
) -> SplitLine:
	"""
	Match a tokenized line against its keyword spec.

	Args:
		state: Parser state.
		fields: Fields from split_fields.
		line_number: 1-based line number.

	Returns:
		SplitLine with positional fields, options and flags.
	"""
	keyword, keyword_column = fields[0]
	spec = KEYWORD_SPECS.get(keyword)
	if spec is None:
		raise StyleSyntaxError(line_number, keyword_column, f"unknown directive '{keyword}'", state.source)

	rest = fields[1:]
	positional: dict[str, tuple[str, int]] = {}
	for name in spec.required:
		if not rest:
			last_column = fields[-1][1] + len(fields[-1][0])
			raise StyleSyntaxError(
				line_number,
				last_column,
				f"'{keyword}' is missing its {name} field",
				state.source,
			)
		positional[name] = rest.pop(0)
	for name in spec.optional:
		if not rest:
			break
		text, _column = rest[0]
		if "=" in text or text in spec.flags:
			break
		positional[name] = rest.pop(0)
	extra: list[tuple[str, int]] = []
	if spec.variadic:
		while rest and "=" not in rest[0][0] and rest[0][0] not in spec.flags:
			extra.append(rest.pop(0))

	options: dict[str, tuple[str, int]] = {}
	flags: set[str] = set()
	for text, column in rest:
		if not text:
			continue
		if "=" in text:
			key, _sep, value = text.partition("=")
			key = key.strip()
			if key not in spec.options:
				raise StyleSyntaxError(line_number, column, f"unknown option '{key}' for '{keyword}'", state.source)
			value_column = column + text.index("=") + 1
			options[key] = (value.strip(), value_column)
			continue
		if text in spec.flags:
			flags.add(text)
			continue
		raise StyleSyntaxError(line_number, column, f"unexpected field '{text}' for '{keyword}'", state.source)

	return SplitLine(
		keyword=keyword,
		line=line_number,
		positional=positional,
		options=options,
		flags=flags,
		extra=extra,
	)


#============================================
def parse_number(
	state: ParseState,
	line_number: int,
	name: str,
	raw: tuple[str, int],
	minimum: float | None = None,
	strict: bool = False,
) -> float:
	"""
	Parse a numeric field, accepting an optional "mm" suffix.

	Args:
		state: Parser state.
		line_number: 1-based line number.
		name: Field name for messages.
		raw: (text, column) tuple.
		minimum: Optional lower bound.
		strict: Whether the bound is exclusive.

	Returns:
		Parsed float value.
	"""
	text, column = raw
	number_text = text[:-2].strip() if text.endswith("mm") else text
	try:
		value = float(number_text)
	except ValueError:
		raise StyleSyntaxError(line_number, column, f"malformed number '{text}' for {name}", state.source) from None
	if not math.isfinite(value):
		raise StyleSyntaxError(line_number, column, f"malformed number '{text}' for {name}", state.source)
	if minimum is not None:
		if strict and value <= minimum:
			raise StyleSyntaxError(line_number, column, f"{name} must be greater than {minimum:g}", state.source)
		if not strict and value < minimum:
			raise StyleSyntaxError(line_number, column, f"{name} must not be negative", state.source)
	return value


#============================================
def parse_count(state: ParseState, line_number: int, raw: tuple[str, int]) -> int:
	"""
	Parse a non-negative integer count field.
	"""
	text, column = raw
	if not text.isdigit():
		raise StyleSyntaxError(line_number, column, f"malformed count '{text}'", state.source)
	return int(text)


#============================================
def parse_value(raw: tuple[str, int], optional: bool) -> tuple[FieldRef | None, str]:
	"""
	Parse a value field into a field reference or literal text.

	Args:
		raw: (text, column) tuple.
		optional: Whether the reference was flagged optional.

	Returns:
		Tuple of (field reference or None, literal text).
	"""
	text, _column = raw
	if text.startswith("$") and len(text) > 1:
		return (FieldRef(name=text[1:], optional=optional), "")
	return (None, text)


#============================================
def parse_line_options(state: ParseState, split: SplitLine) -> dict:
	"""
	Parse the line_width and line_style options.

	Args:
		state: Parser state.
		split: Split directive line.

	Returns:
		Keyword arguments for Directive.
	"""
	values: dict = {}
	if "line_width" in split.options:
		values["line_width"] = parse_number(
			state, split.line, "line_width", split.options["line_width"], minimum=0.0,
		)
	if "line_style" in split.options:
		style, column = split.options["line_style"]
		if style not in LINE_STYLES:
			raise StyleSyntaxError(split.line, column, f"unknown line style '{style}'", state.source)
		values["line_style"] = style
	return values


#============================================
def parse_text_options(state: ParseState, split: SplitLine) -> dict:
	"""
	Parse the typeface, font_size and optional settings shared by text kinds.

	Args:
		state: Parser state.
		split: Split directive line.

	Returns:
		Keyword arguments for Directive.
	"""
	values: dict = {}
	if "typeface" in split.options:
		alias, column = split.options["typeface"]
		if alias not in state.typefaces:
			raise StyleSyntaxError(split.line, column, f"undefined typeface alias '{alias}'", state.source)
		values["typeface"] = alias
	if "font_size" in split.options:
		values["font_size"] = parse_number(
			state, split.line, "font_size", split.options["font_size"], minimum=0.0, strict=True,
		)
	field, literal = parse_value(split.positional["value"], "optional" in split.flags)
	values["field"] = field
	values["literal"] = literal
	return values


#============================================
def parse_position(state: ParseState, split: SplitLine) -> dict:
	"""
	Parse the x and y offsets every drawable directive carries.
	"""
	return {
		"x": parse_number(state, split.line, "x", split.positional["x"]),
		"y": parse_number(state, split.line, "y", split.positional["y"]),
	}


#============================================
def parse_height_field(state: ParseState, split: SplitLine, raw: tuple[str, int] | None) -> float | None:
	"""
	Parse an optional height, where "auto" or absence means grow to content.
	"""
	if raw is None or raw[0] == "auto":
		return None
	return parse_number(state, split.line, "height", raw, minimum=0.0)


#============================================
def add_node(state: ParseState, directive: Directive) -> int:
	"""
	Append a directive to the arena under the currently open box.

	Args:
		state: Parser state.
		directive: Directive with parent already set.

	Returns:
		Arena index of the new node.
	"""
	index = len(state.nodes)
	state.nodes.append(directive)
	state.children.append([])
	state.children[directive.parent].append(index)
	return index


#============================================
def handle_typeface(state: ParseState, split: SplitLine) -> None:
	alias, alias_column = split.positional["alias"]
	face, face_column = split.positional["face"]
	if not alias:
		raise StyleSyntaxError(split.line, alias_column, "typeface alias must not be empty", state.source)
	if face not in BUILTIN_FACES and not face.lower().endswith(".ttf"):
		raise StyleSyntaxError(split.line, face_column, f"unknown typeface face '{face}'", state.source)
	state.typefaces[alias] = face


#============================================
def handle_page(state: ParseState, split: SplitLine) -> None:
	width = parse_number(state, split.line, "width", split.positional["width"], minimum=0.0, strict=True)
	height = parse_number(state, split.line, "height", split.positional["height"], minimum=0.0, strict=True)
	margin = state.page.margin_top
	if "margin" in split.options:
		margin = parse_number(state, split.line, "margin", split.options["margin"], minimum=0.0)
		if 2.0 * margin >= min(width, height):
			raise StyleSyntaxError(split.line, split.options["margin"][1], "margin leaves no usable page area", state.source)
	state.page = PageConfig(
		width=width,
		height=height,
		margin_left=margin,
		margin_top=margin,
		margin_right=margin,
		margin_bottom=margin,
	)


#============================================
def handle_box(state: ParseState, split: SplitLine) -> None:
	values = parse_position(state, split)
	values.update(parse_line_options(state, split))
	if "padding" in split.options:
		values["padding"] = parse_number(state, split.line, "padding", split.options["padding"], minimum=0.0)
	directive = Directive(
		kind="box",
		line=split.line,
		parent=state.stack[-1],
		width=parse_number(state, split.line, "width", split.positional["width"], minimum=0.0),
		height=parse_height_field(state, split, split.positional.get("height")),
		unsplittable="unsplittable" in split.flags,
		**values,
	)
	state.stack.append(add_node(state, directive))


#============================================
def handle_text(state: ParseState, split: SplitLine) -> None:
	"""
	Handle the string, text, list and history directives.

	Args:
		state: Parser state.
		split: Split directive line.
	"""
	values = parse_position(state, split)
	values.update(parse_text_options(state, split))
	kind = split.keyword
	if kind == "string":
		kind = "text"
	else:
		values["width"] = parse_number(state, split.line, "width", split.positional["width"], minimum=0.0)
		values["height"] = parse_height_field(state, split, split.options.get("height"))
	if kind == "history":
		values["month_x"] = HISTORY_MONTH_X
		values["value_x"] = HISTORY_VALUE_X

	if "repeat" in split.options:
		repeat, column = split.options["repeat"]
		if repeat not in REPEAT_MODES:
			raise StyleSyntaxError(split.line, column, f"unknown repeat mode '{repeat}'", state.source)
		values["repeat"] = repeat
	if "spacing" in split.options:
		values["spacing"] = parse_number(state, split.line, "spacing", split.options["spacing"], minimum=0.0)
	for column_name in ("year_x", "month_x", "value_x"):
		if column_name in split.options:
			values[column_name] = parse_number(state, split.line, column_name, split.options[column_name])
	if "row_height" in split.options:
		values["row_height"] = parse_number(
			state, split.line, "row_height", split.options["row_height"], minimum=0.0, strict=True,
		)

	add_node(state, Directive(kind=kind, line=split.line, parent=state.stack[-1], **values))


#============================================
def handle_line(state: ParseState, split: SplitLine) -> None:
	values = parse_position(state, split)
	values.update(parse_line_options(state, split))
	values["dx"] = parse_number(state, split.line, "dx", split.positional["dx"])
	values["dy"] = parse_number(state, split.line, "dy", split.positional["dy"])
	add_node(state, Directive(kind="rule", line=split.line, parent=state.stack[-1], **values))


#============================================
def handle_multi_lines(state: ParseState, split: SplitLine) -> None:
	"""
	Expand a multi_lines directive into evenly stepped rules.

	Args:
		state: Parser state.
		split: Split directive line.
	"""
	start = parse_position(state, split)
	line_values = parse_line_options(state, split)
	dx = parse_number(state, split.line, "dx", split.positional["dx"])
	dy = parse_number(state, split.line, "dy", split.positional["dy"])
	count = parse_count(state, split.line, split.positional["count"])
	step_x = parse_number(state, split.line, "step_x", split.positional["step_x"])
	step_y = parse_number(state, split.line, "step_y", split.positional["step_y"])
	for index in range(count):
		directive = Directive(
			kind="rule",
			line=split.line,
			parent=state.stack[-1],
			x=start["x"] + index * step_x,
			y=start["y"] + index * step_y,
			dx=dx,
			dy=dy,
			**line_values,
		)
		add_node(state, directive)


#============================================
def handle_lines(state: ParseState, split: SplitLine) -> None:
	"""
	Handle a lines directive: a start point followed by relative steps.

	The count is the number of vertices, so count - 1 (dx, dy) pairs
	follow the start point. The path is closed unless close=false.

	Args:
		state: Parser state.
		split: Split directive line.
	"""
	values = parse_position(state, split)
	values.update(parse_line_options(state, split))
	count_raw = split.positional["count"]
	count = parse_count(state, split.line, count_raw)
	if count < 2:
		raise StyleSyntaxError(split.line, count_raw[1], "lines needs at least two points", state.source)
	expected = 2 * (count - 1)
	if len(split.extra) != expected:
		raise StyleSyntaxError(
			split.line,
			count_raw[1],
			f"lines with {count} points needs {expected} step fields, found {len(split.extra)}",
			state.source,
		)
	close = True
	if "close" in split.options:
		text, column = split.options["close"]
		if text not in ("true", "false"):
			raise StyleSyntaxError(split.line, column, f"close must be true or false, not '{text}'", state.source)
		close = text == "true"

	x = 0.0
	y = 0.0
	points = [(x, y)]
	for position in range(0, expected, 2):
		x += parse_number(state, split.line, "dx", split.extra[position])
		y += parse_number(state, split.line, "dy", split.extra[position + 1])
		points.append((x, y))
	directive = Directive(
		kind="polyline",
		line=split.line,
		parent=state.stack[-1],
		points=tuple(points),
		close=close,
		**values,
	)
	add_node(state, directive)


#============================================
def handle_photo(state: ParseState, split: SplitLine) -> None:
	values = parse_position(state, split)
	field = FieldRef(name=PHOTO_FIELD, optional=True)
	if "value" in split.positional:
		text, column = split.positional["value"]
		if not text.startswith("$") or len(text) < 2:
			raise StyleSyntaxError(split.line, column, "photo source must be a field reference", state.source)
		field = FieldRef(name=text[1:], optional=True)
	directive = Directive(
		kind="photo",
		line=split.line,
		parent=state.stack[-1],
		width=parse_number(state, split.line, "width", split.positional["width"], minimum=0.0),
		height=parse_number(state, split.line, "height", split.positional["height"], minimum=0.0),
		field=field,
		**values,
	)
	add_node(state, directive)


#============================================
def handle_end(state: ParseState, split: SplitLine, column: int) -> None:
	if len(state.stack) <= 1:
		raise StyleSyntaxError(split.line, column, "'end' without an open box", state.source)
	state.stack.pop()


#============================================
def require_root(state: ParseState, split: SplitLine, column: int) -> None:
	if len(state.stack) > 1:
		raise StyleSyntaxError(split.line, column, f"'{split.keyword}' is only allowed outside boxes", state.source)


#============================================
def parse_style_text(text: str, source: str = "style") -> StyleDocument:
	"""
	Parse style text into a StyleDocument arena.

	Args:
		text: Style file contents.
		source: Name used in error messages.

	Returns:
		StyleDocument.
	"""
	root = Directive(kind="box", line=0, parent=None)
	state = ParseState(
		source=source,
		nodes=[root],
		children=[[]],
		stack=[0],
		typefaces=dict(BUILTIN_ALIASES),
		page=PageConfig(),
	)
	for line_number, raw_line in enumerate(text.splitlines(), start=1):
		stripped = raw_line.strip()
		if not stripped or stripped.startswith("#"):
			continue
		fields = split_fields(raw_line)
		split = split_directive(state, fields, line_number)
		keyword_column = fields[0][1]
		if split.keyword == "typeface":
			handle_typeface(state, split)
		elif split.keyword == "page":
			require_root(state, split, keyword_column)
			handle_page(state, split)
		elif split.keyword == "box":
			handle_box(state, split)
		elif split.keyword == "end":
			handle_end(state, split, keyword_column)
		elif split.keyword in ("string", "text", "list", "history"):
			handle_text(state, split)
		elif split.keyword == "line":
			handle_line(state, split)
		elif split.keyword == "multi_lines":
			handle_multi_lines(state, split)
		elif split.keyword == "lines":
			handle_lines(state, split)
		elif split.keyword == "photo":
			handle_photo(state, split)
		elif split.keyword == "new_page":
			require_root(state, split, keyword_column)
			add_node(state, Directive(kind="new_page", line=line_number, parent=state.stack[-1]))

	if len(state.stack) > 1:
		open_box = state.nodes[state.stack[-1]]
		raise StyleSyntaxError(open_box.line, 1, "box opened here is never closed", source)

	nodes = tuple(
		dataclasses.replace(node, children=tuple(state.children[index]))
		for index, node in enumerate(state.nodes)
	)
	typefaces = types.MappingProxyType(dict(state.typefaces))
	return StyleDocument(nodes=nodes, typefaces=typefaces, page=state.page, source=source)


#============================================
def read_style_file(path: pathlib.Path) -> StyleDocument:
	"""
	Read and parse a style file.

	Args:
		path: Style file path.

	Returns:
		StyleDocument.
	"""
	text = path.read_text(encoding="utf-8")
	return parse_style_text(text, source=path.name)
