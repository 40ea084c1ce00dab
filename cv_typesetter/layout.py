"""
Layout engine.

Layout runs in two passes over the directive arena. The measure pass walks
bottom-up and computes every node's content and flow height, resolving
fields and wrapping text. The place pass walks top-down, turns relative
offsets into document coordinates and asks the paginator where each piece
lands.
"""

# Standard Library
import dataclasses
import itertools
import pathlib

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.data_lib
import cv_typesetter.errors
import cv_typesetter.metrics
import cv_typesetter.paginate
import cv_typesetter.render
import cv_typesetter.style_lib


PageConfig = cvt.config.PageConfig
LayoutWarning = cvt.config.LayoutWarning
DataRecord = cvt.data_lib.DataRecord
DataResolver = cvt.data_lib.DataResolver
TextMetrics = cvt.metrics.TextMetrics
Paginator = cvt.paginate.Paginator
PageBuffer = cvt.paginate.PageBuffer
Frame = cvt.paginate.Frame
ResolvedBox = cvt.render.ResolvedBox
ResolvedLine = cvt.render.ResolvedLine
build_draw_commands = cvt.render.build_draw_commands
Directive = cvt.style_lib.Directive
StyleDocument = cvt.style_lib.StyleDocument

LAYOUT_EPSILON = cvt.config.LAYOUT_EPSILON
MONTH_SHIFT_EM = cvt.config.MONTH_SHIFT_EM
points_to_mm = cvt.config.points_to_mm

TEXT_KINDS = cvt.style_lib.TEXT_KINDS


@dataclasses.dataclass
class WrappedLine:
	text: str
	width: float


@dataclasses.dataclass
class TextRow:
	offset_x: float
	offset_y: float
	height: float
	text: str
	width: float


@dataclasses.dataclass
class Measured:
	height: float
	content_height: float
	rows: list[TextRow] = dataclasses.field(default_factory=list)
	line_height: float = 0.0
	source: str | None = None


@dataclasses.dataclass
class LayoutContext:
	document: StyleDocument
	measured: list[Measured]
	paginator: Paginator


@dataclasses.dataclass
class LayoutResult:
	pages: list[PageBuffer]
	warnings: list[LayoutWarning]
	overflow_breaks: int
	forced_breaks: int
	page_config: PageConfig


#============================================
def tokenize_for_wrap(text: str, metrics: TextMetrics) -> list[str]:
	"""
	Split text into wrap tokens.

	Whitespace runs and Latin words are single tokens. Each Japanese
	character is its own token, so lines may break between any two.

	Args:
		text: Paragraph text without newlines.
		metrics: Text metrics for script classification.

	Returns:
		List of tokens.
	"""
	tokens: list[str] = []
	current = ""
	current_is_space = False
	for char in text:
		is_space = char.isspace()
		if not is_space and metrics.classify(char) == cvt.metrics.JAPANESE:
			if current:
				tokens.append(current)
				current = ""
			tokens.append(char)
			continue
		if current and is_space != current_is_space:
			tokens.append(current)
			current = ""
		current += char
		current_is_space = is_space
	if current:
		tokens.append(current)
	return tokens


#============================================
def wrap_text(
	text: str,
	width: float | None,
	typeface: str,
	size: float,
	metrics: TextMetrics,
) -> list[WrappedLine]:
	"""
	Greedy word wrap.

	Breaks at the last whitespace (or Japanese character) boundary that
	keeps the line within width. A word wider than the box is never split
	and overflows on its own line. Newlines force breaks.

	Args:
		text: Text to wrap.
		width: Box width in mm, or None for no wrapping.
		typeface: Typeface alias.
		size: Font size in points.
		metrics: Text metrics.

	Returns:
		List of WrappedLine entries.
	"""
	if not text:
		return []
	lines: list[WrappedLine] = []
	for paragraph in text.split("\n"):
		if width is None:
			lines.append(WrappedLine(paragraph, metrics.text_width(paragraph, typeface, size)))
			continue
		current = ""
		current_width = 0.0
		for token in tokenize_for_wrap(paragraph, metrics):
			token_width = metrics.text_width(token, typeface, size)
			if token.isspace():
				current += token
				current_width += token_width
				continue
			has_content = bool(current.strip())
			if has_content and current_width + token_width > width + LAYOUT_EPSILON:
				kept = current.rstrip()
				lines.append(WrappedLine(kept, metrics.text_width(kept, typeface, size)))
				current = token
				current_width = token_width
				continue
			current += token
			current_width += token_width
		kept = current.rstrip()
		lines.append(WrappedLine(kept, metrics.text_width(kept, typeface, size)))
	return lines


#============================================
def collect_glyph_warnings(
	node: Directive,
	texts: list[str],
	metrics: TextMetrics,
	warnings: list[LayoutWarning],
) -> None:
	"""
	Record characters neither metrics table covers.
	"""
	missing: list[str] = []
	for text in texts:
		for char in metrics.unsupported_chars(text):
			if char not in missing:
				missing.append(char)
	if not missing:
		return
	shown = ", ".join(f"U+{ord(char):04X}" for char in missing)
	warnings.append(
		LayoutWarning(
			kind="unsupported_glyph",
			message=f"line {node.line}: no glyph for {shown}; drawn as placeholder",
			line=node.line,
		)
	)


#============================================
def fit_to_height(
	node: Directive,
	rows: list[TextRow],
	content_height: float,
	line_height: float,
	warnings: list[LayoutWarning],
) -> Measured:
	"""
	Apply an explicit directive height to measured rows.

	Content that fits is centred vertically. Rows past the height are
	clipped and reported.

	Args:
		node: Text directive.
		rows: Rows positioned from the directive top.
		content_height: Natural content height.
		line_height: Line height in mm.
		warnings: Warning list to extend.

	Returns:
		Measured entry.
	"""
	if node.height is None:
		return Measured(height=content_height, content_height=content_height, rows=rows, line_height=line_height)
	if content_height <= node.height + LAYOUT_EPSILON:
		offset = (node.height - content_height) / 2.0
		rows = [dataclasses.replace(row, offset_y=row.offset_y + offset) for row in rows]
	else:
		kept = [row for row in rows if row.offset_y + row.height <= node.height + LAYOUT_EPSILON]
		if len(kept) < len(rows):
			warnings.append(
				LayoutWarning(
					kind="text_clipped",
					message=f"line {node.line}: {len(rows) - len(kept)} line(s) clipped to height {node.height:g}mm",
					line=node.line,
				)
			)
		rows = kept
	return Measured(height=node.height, content_height=content_height, rows=rows, line_height=line_height)


#============================================
def measure_text(
	node: Directive,
	resolver: DataResolver,
	metrics: TextMetrics,
	warnings: list[LayoutWarning],
) -> Measured:
	value = resolver.resolve_text(node.field, node.literal)
	collect_glyph_warnings(node, [value], metrics, warnings)
	line_height = metrics.line_height(node.typeface, node.font_size)
	lines = wrap_text(value, node.width, node.typeface, node.font_size, metrics)
	rows = [
		TextRow(0.0, index * line_height, line_height, line.text, line.width)
		for index, line in enumerate(lines)
		if line.text
	]
	return fit_to_height(node, rows, len(lines) * line_height, line_height, warnings)


#============================================
def measure_list(
	node: Directive,
	resolver: DataResolver,
	metrics: TextMetrics,
	warnings: list[LayoutWarning],
) -> Measured:
	"""
	Measure a list field, one element per row or side by side.

	Args:
		node: List directive.
		resolver: Data resolver.
		metrics: Text metrics.
		warnings: Warning list to extend.

	Returns:
		Measured entry.
	"""
	items = resolver.resolve_items(node.field, node.literal)
	collect_glyph_warnings(node, list(items), metrics, warnings)
	line_height = metrics.line_height(node.typeface, node.font_size)
	rows: list[TextRow] = []

	if node.repeat == "horizontal":
		em = points_to_mm(node.font_size)
		x = 0.0
		for item in items:
			item_width = metrics.text_width(item, node.typeface, node.font_size)
			rows.append(TextRow(x, 0.0, line_height, item, item_width))
			if node.spacing is not None:
				x += node.spacing
			else:
				x += item_width + em
		content_height = line_height if items else 0.0
		return fit_to_height(node, rows, content_height, line_height, warnings)

	gap = node.spacing or 0.0
	y = 0.0
	for position, item in enumerate(items):
		if position > 0:
			y += gap
		lines = wrap_text(item, node.width, node.typeface, node.font_size, metrics)
		if not lines:
			lines = [WrappedLine("", 0.0)]
		for line in lines:
			# an empty element still takes its row
			if line.text or not item:
				rows.append(TextRow(0.0, y, line_height, line.text, line.width))
			y += line_height
	return fit_to_height(node, rows, y, line_height, warnings)


#============================================
def measure_history(
	node: Directive,
	resolver: DataResolver,
	metrics: TextMetrics,
	warnings: list[LayoutWarning],
) -> Measured:
	"""
	Measure a year / month / value history table.

	Args:
		node: History directive.
		resolver: Data resolver.
		metrics: Text metrics.
		warnings: Warning list to extend.

	Returns:
		Measured entry.
	"""
	entries = resolver.resolve_entries(node.field, node.literal)
	texts = []
	for entry in entries:
		texts.extend([entry.year, entry.month, entry.value])
	collect_glyph_warnings(node, texts, metrics, warnings)

	size = node.font_size
	line_height = metrics.line_height(node.typeface, size)
	row_height = node.row_height or line_height
	month_shift = points_to_mm(size) * MONTH_SHIFT_EM
	value_width = None
	if node.width is not None and node.width - node.value_x > 0.0:
		value_width = node.width - node.value_x

	rows: list[TextRow] = []
	y = 0.0
	for entry in entries:
		if entry.year:
			year_width = metrics.text_width(entry.year, node.typeface, size)
			rows.append(TextRow(node.year_x, y, line_height, entry.year, year_width))
		if entry.month:
			month_x = node.month_x
			# two-digit months shift so their last digit lines up
			if len(entry.month) > 1:
				month_x -= month_shift
			month_width = metrics.text_width(entry.month, node.typeface, size)
			rows.append(TextRow(month_x, y, line_height, entry.month, month_width))
		lines = wrap_text(entry.value, value_width, node.typeface, size, metrics)
		for index, line in enumerate(lines):
			if line.text:
				rows.append(TextRow(node.value_x, y + index * line_height, line_height, line.text, line.width))
		y += max(row_height, len(lines) * line_height)
	return fit_to_height(node, rows, y, line_height, warnings)


#============================================
def measure_photo(
	node: Directive,
	resolver: DataResolver,
	base_dir: pathlib.Path | None,
	warnings: list[LayoutWarning],
) -> Measured:
	"""
	Resolve the photo path; a missing file degrades to a placeholder.
	"""
	value = resolver.resolve_text(node.field, "")
	source = None
	if value:
		path = pathlib.Path(value)
		if not path.is_absolute() and base_dir is not None:
			path = base_dir / path
		if path.is_file():
			source = str(path)
		else:
			warnings.append(
				LayoutWarning(
					kind="photo_missing",
					message=f"line {node.line}: photo '{value}' not found; drawing placeholder",
					line=node.line,
				)
			)
	return Measured(height=node.height, content_height=node.height, source=source)


#============================================
def polyline_top(node: Directive) -> float:
	return min(point[1] for point in node.points)


#============================================
def polyline_height(node: Directive) -> float:
	return max(point[1] for point in node.points) - polyline_top(node)


#============================================
def child_bottom(child: Directive, measured: Measured) -> float:
	if child.kind == "rule":
		return child.y + max(0.0, child.dy)
	if child.kind == "polyline":
		return child.y + polyline_top(child) + measured.height
	if child.kind == "new_page":
		return 0.0
	return child.y + measured.height


#============================================
def measure_box(document: StyleDocument, index: int, measured: list[Measured | None]) -> Measured:
	"""
	Compute a box's flow height from its already measured children.

	Args:
		document: Style document.
		index: Arena index of the box.
		measured: Measurements by index; children must be filled in.

	Returns:
		Measured entry.
	"""
	node = document.nodes[index]
	content_height = 0.0
	for child_index in node.children:
		bottom = child_bottom(document.nodes[child_index], measured[child_index])
		content_height = max(content_height, bottom)
	content_height += 2.0 * node.padding
	if node.height is not None:
		return Measured(height=node.height, content_height=content_height)
	return Measured(height=content_height, content_height=content_height)


#============================================
def measure_document(
	document: StyleDocument,
	resolver: DataResolver,
	metrics: TextMetrics,
	base_dir: pathlib.Path | None,
	warnings: list[LayoutWarning],
) -> list[Measured]:
	"""
	Bottom-up measure pass over the arena.

	Leaves are measured in document order, then boxes in reverse arena
	order; children always sit at higher indices than their box.

	Args:
		document: Style document.
		resolver: Data resolver.
		metrics: Text metrics.
		base_dir: Directory that relative photo paths resolve against.
		warnings: Warning list to extend.

	Returns:
		Measured entries indexed like document.nodes.
	"""
	measured: list[Measured | None] = [None] * len(document.nodes)
	for index, node in enumerate(document.nodes):
		if node.kind == "text":
			measured[index] = measure_text(node, resolver, metrics, warnings)
		elif node.kind == "list":
			measured[index] = measure_list(node, resolver, metrics, warnings)
		elif node.kind == "history":
			measured[index] = measure_history(node, resolver, metrics, warnings)
		elif node.kind == "photo":
			measured[index] = measure_photo(node, resolver, base_dir, warnings)
		elif node.kind == "rule":
			measured[index] = Measured(height=abs(node.dy), content_height=abs(node.dy))
		elif node.kind == "polyline":
			height = polyline_height(node)
			measured[index] = Measured(height=height, content_height=height)
		elif node.kind == "new_page":
			measured[index] = Measured(height=0.0, content_height=0.0)
	for index in range(len(document.nodes) - 1, -1, -1):
		if document.nodes[index].kind == "box":
			measured[index] = measure_box(document, index, measured)
	return measured


#============================================
def make_room(paginator: Paginator, doc_top: float, height: float) -> None:
	"""
	Break before an element that does not fit on the current page.

	An element already at the page top stays put; breaking again would not
	help it.
	"""
	if paginator.fits(doc_top, height) or paginator.at_page_top(doc_top):
		return
	paginator.break_page(doc_top)


#============================================
def flush_text_segment(
	context: LayoutContext,
	index: int,
	doc_x: float,
	lines: list[ResolvedLine],
) -> None:
	"""
	Emit the lines of a text directive that landed on the current page.

	Args:
		context: Layout context.
		index: Arena index of the directive.
		doc_x: Directive x in document space.
		lines: Lines placed on the current page.
	"""
	if not lines:
		return
	node = context.document.nodes[index]
	paginator = context.paginator
	measured = context.measured[index]
	top = min(line.y for line in lines)
	bottom = max(line.y for line in lines) + measured.line_height
	width = node.width
	if width is None:
		width = max(line.x + line.width for line in lines) - paginator.to_page_x(doc_x)
	resolved = ResolvedBox(
		index=index,
		kind=node.kind,
		page_index=paginator.page_index,
		x=paginator.to_page_x(doc_x),
		y=top,
		width=width,
		height=bottom - top,
		lines=lines,
		typeface=node.typeface,
		font_size=node.font_size,
	)
	paginator.add(build_draw_commands(resolved))


#============================================
def place_text(context: LayoutContext, index: int, doc_x: float, doc_y: float) -> float:
	"""
	Place a text, list or history directive.

	Content that fits within one page moves as a whole. Taller content is
	split between rows; a row is never split.

	Args:
		context: Layout context.
		index: Arena index of the directive.
		doc_x: Directive x in document space.
		doc_y: Directive y in document space.

	Returns:
		Document y of the directive bottom.
	"""
	paginator = context.paginator
	measured = context.measured[index]
	top = paginator.clamp(doc_y)
	if measured.height <= paginator.page_config.usable_height + LAYOUT_EPSILON:
		make_room(paginator, top, measured.height)

	segment: list[ResolvedLine] = []
	rows = sorted(measured.rows, key=lambda row: row.offset_y)
	for offset_y, band in itertools.groupby(rows, key=lambda row: row.offset_y):
		band_rows = list(band)
		band_top = top + offset_y
		band_height = max(row.height for row in band_rows)
		if not paginator.fits(band_top, band_height) and not paginator.at_page_top(band_top):
			flush_text_segment(context, index, doc_x, segment)
			segment = []
			paginator.break_page(band_top)
		for row in band_rows:
			segment.append(
				ResolvedLine(
					x=paginator.to_page_x(doc_x + row.offset_x),
					y=paginator.to_page_y(band_top),
					text=row.text,
					width=row.width,
				)
			)
	flush_text_segment(context, index, doc_x, segment)
	paginator.advance_cursor(top + measured.height)
	return top + measured.height


#============================================
def place_box(context: LayoutContext, index: int, doc_x: float, doc_y: float) -> float:
	"""
	Place a box, its frame segment and then its children.

	An unsplittable box that does not fit moves to the next page whole. A
	splittable box stays and draws the part that fits; the rest of its
	frame continues at the top of the following pages. A box without an
	explicit height grows when its children were pushed down by a break.

	Args:
		context: Layout context.
		index: Arena index of the box.
		doc_x: Box x in document space.
		doc_y: Box y in document space.

	Returns:
		Document y of the box bottom.
	"""
	node = context.document.nodes[index]
	paginator = context.paginator
	height = context.measured[index].height
	top = paginator.clamp(doc_y)
	if not paginator.fits(top, height) and not paginator.at_page_top(top):
		if node.unsplittable or top >= paginator.page_bottom - LAYOUT_EPSILON:
			paginator.break_page(top)

	frame = Frame(
		index=index,
		x=doc_x,
		width=node.width,
		doc_bottom=top + height,
		line_width=node.line_width,
		line_style=node.line_style,
		doc_top=top,
		grows=node.height is None,
	)
	paginator.push_frame(frame)
	paginator.add_segment(frame, top)
	content_bottom = place_children(context, index, doc_x + node.padding, top + node.padding)
	if frame.grows:
		paginator.extend_frame(frame, content_bottom + node.padding)
		height = frame.doc_bottom - top
	# the frame still runs past the page; carry it over
	if node.line_style != "none":
		while top + height > paginator.page_bottom + LAYOUT_EPSILON:
			paginator.break_page(paginator.page_bottom)
	paginator.pop_frame(index)
	paginator.advance_cursor(top + height)
	return top + height


#============================================
def place_rule(context: LayoutContext, index: int, doc_x: float, doc_y: float) -> float:
	node = context.document.nodes[index]
	paginator = context.paginator
	top = doc_y + min(0.0, node.dy)
	clamped = paginator.clamp(top)
	doc_y += clamped - top
	make_room(paginator, clamped, abs(node.dy))
	resolved = ResolvedBox(
		index=index,
		kind="rule",
		page_index=paginator.page_index,
		x=paginator.to_page_x(doc_x),
		y=paginator.to_page_y(doc_y),
		width=abs(node.dx),
		height=abs(node.dy),
		line_width=node.line_width,
		line_style=node.line_style,
		x2=paginator.to_page_x(doc_x + node.dx),
		y2=paginator.to_page_y(doc_y + node.dy),
	)
	paginator.add(build_draw_commands(resolved))
	paginator.advance_cursor(clamped + abs(node.dy))
	return clamped + abs(node.dy)


#============================================
def place_polyline(context: LayoutContext, index: int, doc_x: float, doc_y: float) -> float:
	"""
	Place a lines directive; the whole path moves together.
	"""
	node = context.document.nodes[index]
	paginator = context.paginator
	height = context.measured[index].height
	top = doc_y + polyline_top(node)
	clamped = paginator.clamp(top)
	doc_y += clamped - top
	make_room(paginator, clamped, height)
	points = tuple(
		(paginator.to_page_x(doc_x + offset_x), paginator.to_page_y(doc_y + offset_y))
		for offset_x, offset_y in node.points
	)
	resolved = ResolvedBox(
		index=index,
		kind="polyline",
		page_index=paginator.page_index,
		x=points[0][0],
		y=paginator.to_page_y(clamped),
		width=max(point[0] for point in points) - min(point[0] for point in points),
		height=height,
		line_width=node.line_width,
		line_style=node.line_style,
		points=points,
		close=node.close,
	)
	paginator.add(build_draw_commands(resolved))
	paginator.advance_cursor(clamped + height)
	return clamped + height


#============================================
def place_photo(context: LayoutContext, index: int, doc_x: float, doc_y: float) -> float:
	node = context.document.nodes[index]
	paginator = context.paginator
	top = paginator.clamp(doc_y)
	make_room(paginator, top, node.height)
	resolved = ResolvedBox(
		index=index,
		kind="photo",
		page_index=paginator.page_index,
		x=paginator.to_page_x(doc_x),
		y=paginator.to_page_y(top),
		width=node.width,
		height=node.height,
		source=context.measured[index].source,
	)
	paginator.add(build_draw_commands(resolved))
	paginator.advance_cursor(top + node.height)
	return top + node.height


#============================================
def place_node(context: LayoutContext, index: int, origin_x: float, origin_y: float) -> float:
	"""
	Place one directive relative to its parent's content origin.

	Args:
		context: Layout context.
		index: Arena index.
		origin_x: Parent content origin x in document space.
		origin_y: Parent content origin y in document space.

	Returns:
		Document y of the directive bottom.
	"""
	node = context.document.nodes[index]
	doc_x = origin_x + node.x
	doc_y = origin_y + node.y
	if node.kind == "box":
		return place_box(context, index, doc_x, doc_y)
	if node.kind in TEXT_KINDS:
		return place_text(context, index, doc_x, doc_y)
	if node.kind == "rule":
		return place_rule(context, index, doc_x, doc_y)
	if node.kind == "polyline":
		return place_polyline(context, index, doc_x, doc_y)
	if node.kind == "photo":
		return place_photo(context, index, doc_x, doc_y)
	raise cvt.errors.InternalConsistencyFault(f"cannot place directive kind '{node.kind}'")


#============================================
def node_top(node: Directive) -> float:
	"""
	Offset of a directive's highest point from its parent's content origin.
	"""
	if node.kind == "rule":
		return node.y + min(0.0, node.dy)
	if node.kind == "polyline":
		return node.y + polyline_top(node)
	return node.y


#============================================
def place_children(context: LayoutContext, index: int, origin_x: float, origin_y: float) -> float:
	"""
	Place the children of a box in document order.

	Once a page break has moved the page window past a sibling that is
	still to be placed, that sibling and every later one shift down by the
	same amount, so they keep their offsets to each other and start below
	the content already placed.

	Args:
		context: Layout context.
		index: Arena index of the parent box.
		origin_x: Content origin x in document space.
		origin_y: Content origin y in document space.

	Returns:
		Document y of the lowest child bottom, or origin_y without children.
	"""
	paginator = context.paginator
	start_page = paginator.page_index
	shift = 0.0
	bottom = origin_y
	for child_index in context.document.nodes[index].children:
		child = context.document.nodes[child_index]
		if child.kind == "new_page":
			origin_y = paginator.force_break()
			start_page = paginator.page_index
			shift = 0.0
			continue
		child_top = origin_y + shift + node_top(child)
		if paginator.page_index > start_page and child_top < paginator.page_origin - LAYOUT_EPSILON:
			shift += max(paginator.cursor_y, paginator.page_origin) - child_top
		placed_bottom = place_node(context, child_index, origin_x, origin_y + shift)
		bottom = max(bottom, placed_bottom)
	return bottom


#============================================
def layout_document(
	document: StyleDocument,
	record: DataRecord,
	metrics: TextMetrics | None = None,
	base_dir: pathlib.Path | None = None,
) -> LayoutResult:
	"""
	Lay out a style document against a data record.

	All fields are resolved before anything is placed, so a missing or
	mistyped field fails the run before any page exists.

	Args:
		document: Parsed style document.
		record: Decoded CV data.
		metrics: Text metrics; built from the document typefaces when None.
		base_dir: Directory that relative photo paths resolve against.

	Returns:
		LayoutResult with sealed page buffers and collected warnings.
	"""
	if metrics is None:
		metrics = TextMetrics(document.typefaces)
	warnings: list[LayoutWarning] = []
	resolver = DataResolver(record)
	measured = measure_document(document, resolver, metrics, base_dir, warnings)

	paginator = Paginator(document.page)
	context = LayoutContext(document=document, measured=measured, paginator=paginator)
	place_children(context, 0, 0.0, 0.0)

	pages = paginator.finish()
	return LayoutResult(
		pages=pages,
		warnings=warnings,
		overflow_breaks=paginator.overflow_breaks,
		forced_breaks=paginator.forced_breaks,
		page_config=document.page,
	)
