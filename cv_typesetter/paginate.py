"""
Page state for the layout pass.

Layout works in one continuous document y space (mm, downward). Each page
shows the window [page_origin, page_origin + usable_height) of that space
below the top margin. A page break moves the window so the overflowing
element lands at the top margin. x positions never change.
"""

# Standard Library
import dataclasses

# local repo modules
import cv_typesetter as cvt
import cv_typesetter.config
import cv_typesetter.errors
import cv_typesetter.render


PageConfig = cvt.config.PageConfig
InternalConsistencyFault = cvt.errors.InternalConsistencyFault
ResolvedBox = cvt.render.ResolvedBox
build_draw_commands = cvt.render.build_draw_commands

LAYOUT_EPSILON = cvt.config.LAYOUT_EPSILON

FILLING = "filling"
SEALING = "sealing"
DONE = "done"


class PageBuffer:
	"""
	Ordered draw commands for one page.
	"""

	def __init__(self, page_index: int) -> None:
		self.page_index = page_index
		self.commands: list = []
		self.sealed = False

	def append(self, command: object) -> None:
		if self.sealed:
			raise InternalConsistencyFault(f"page {self.page_index} is sealed")
		self.commands.append(command)

	def replace(self, position: int, command: object) -> None:
		if self.sealed:
			raise InternalConsistencyFault(f"page {self.page_index} is sealed")
		self.commands[position] = command

	def seal(self) -> None:
		if self.sealed:
			raise InternalConsistencyFault(f"page {self.page_index} sealed twice")
		self.sealed = True


@dataclasses.dataclass
class Frame:
	index: int
	x: float
	width: float
	doc_bottom: float
	line_width: float
	line_style: str
	doc_top: float = 0.0
	grows: bool = False
	# (page index, command position, segment doc top) of the last drawn segment
	segment: tuple[int, int, float] | None = None


class Paginator:
	"""
	Owns the current page, the cursor and the sealed page buffers.
	"""

	def __init__(self, page_config: PageConfig) -> None:
		self.page_config = page_config
		self.state = FILLING
		self.page_index = 0
		self.page_origin = 0.0
		self.cursor_y = 0.0
		self.overflow_breaks = 0
		self.forced_breaks = 0
		self.frames: list[Frame] = []
		self.pages: list[PageBuffer] = [PageBuffer(page_index=0)]

	@property
	def current(self) -> PageBuffer:
		return self.pages[-1]

	@property
	def page_bottom(self) -> float:
		return self.page_origin + self.page_config.usable_height

	def to_page_y(self, doc_y: float) -> float:
		return self.page_config.margin_top + doc_y - self.page_origin

	def to_page_x(self, doc_x: float) -> float:
		return self.page_config.margin_left + doc_x

	def clamp(self, doc_y: float) -> float:
		"""
		Keep a position from landing above the current page window.
		"""
		return max(doc_y, self.page_origin)

	def fits(self, doc_top: float, height: float) -> bool:
		return doc_top + height <= self.page_bottom + LAYOUT_EPSILON

	def at_page_top(self, doc_top: float) -> bool:
		return doc_top <= self.page_origin + LAYOUT_EPSILON

	def require_filling(self) -> None:
		if self.state != FILLING:
			raise InternalConsistencyFault(f"paginator is {self.state}, not filling")

	def add(self, commands: list) -> None:
		self.require_filling()
		for command in commands:
			self.current.append(command)

	def advance_cursor(self, doc_bottom: float) -> None:
		self.cursor_y = max(self.cursor_y, doc_bottom)

	def push_frame(self, frame: Frame) -> None:
		self.frames.append(frame)

	def pop_frame(self, index: int) -> None:
		if not self.frames or self.frames[-1].index != index:
			raise InternalConsistencyFault(f"box {index} closed out of order")
		self.frames.pop()

	def add_segment(self, frame: Frame, doc_top: float) -> None:
		"""
		Draw the part of an open box frame that falls on the current page.

		Args:
			frame: Open frame.
			doc_top: Document y where the segment starts.
		"""
		bottom = min(frame.doc_bottom, self.page_bottom)
		if bottom - doc_top <= LAYOUT_EPSILON:
			return
		resolved = ResolvedBox(
			index=frame.index,
			kind="box",
			page_index=self.page_index,
			x=self.to_page_x(frame.x),
			y=self.to_page_y(doc_top),
			width=frame.width,
			height=bottom - doc_top,
			line_width=frame.line_width,
			line_style=frame.line_style,
		)
		commands = build_draw_commands(resolved)
		if not commands:
			return
		self.add(commands)
		frame.segment = (self.page_index, len(self.current.commands) - 1, doc_top)

	def extend_frame(self, frame: Frame, doc_bottom: float) -> None:
		"""
		Grow an open frame whose content ended below its measured bottom.

		The segment already drawn on the current page is redrawn taller.

		Args:
			frame: Open frame.
			doc_bottom: New document y of the frame bottom.
		"""
		if doc_bottom <= frame.doc_bottom + LAYOUT_EPSILON:
			return
		frame.doc_bottom = doc_bottom
		if frame.segment is None or frame.segment[0] != self.page_index:
			self.add_segment(frame, max(frame.doc_top, self.page_origin))
			return
		_page_index, position, doc_top = frame.segment
		rect = self.current.commands[position]
		height = min(doc_bottom, self.page_bottom) - doc_top
		self.current.replace(position, dataclasses.replace(rect, height=height))

	def continue_frames(self) -> None:
		"""
		Draw frame segments for boxes still open at the top of a new page.
		"""
		for frame in self.frames:
			self.add_segment(frame, self.page_origin)

	def break_page(self, doc_top: float, forced: bool = False) -> float:
		"""
		Seal the current page and open the next one at doc_top.

		Args:
			doc_top: Document y that becomes the new page's top margin.
			forced: True for explicit new_page directives.

		Returns:
			The new page origin.
		"""
		self.require_filling()
		# auto height boxes hold content down to the break
		for frame in self.frames:
			if frame.grows:
				self.extend_frame(frame, doc_top)
		self.state = SEALING
		self.current.seal()
		self.page_index += 1
		self.pages.append(PageBuffer(page_index=self.page_index))
		self.page_origin = doc_top
		self.cursor_y = doc_top
		if forced:
			self.forced_breaks += 1
		else:
			self.overflow_breaks += 1
		self.state = FILLING
		self.continue_frames()
		return self.page_origin

	def force_break(self) -> float:
		"""
		Start a new page below everything placed so far.

		Returns:
			The new page origin.
		"""
		new_origin = max(self.page_bottom, self.cursor_y)
		return self.break_page(new_origin, forced=True)

	def finish(self) -> list[PageBuffer]:
		"""
		Seal the last page and stop accepting commands.

		Returns:
			All page buffers in page order.
		"""
		self.require_filling()
		if self.frames:
			raise InternalConsistencyFault("layout finished with boxes still open")
		self.current.seal()
		self.state = DONE
		return list(self.pages)
