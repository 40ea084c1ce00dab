"""
Pytest configuration for local imports and shared layout fixtures.
"""

# Standard Library
import os
import sys

# PIP3 modules
import pytest

#============================================


def _ensure_repo_on_path() -> None:
	"""
	Ensure the repository root is on sys.path.
	"""
	repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
	if repo_root not in sys.path:
		sys.path.insert(0, repo_root)


_ensure_repo_on_path()

# local repo modules
import cv_typesetter.data_lib  # noqa: E402
import cv_typesetter.layout  # noqa: E402
import cv_typesetter.metrics  # noqa: E402
import cv_typesetter.style_lib  # noqa: E402


#============================================
@pytest.fixture(scope="session")
def metrics() -> cv_typesetter.metrics.TextMetrics:
	"""
	Text metrics for the built-in typeface aliases.
	"""
	return cv_typesetter.metrics.TextMetrics()


#============================================
@pytest.fixture
def run_layout():
	"""
	Lay out style text against a plain data mapping.

	Returns:
		Callable (style_text, data) -> LayoutResult.
	"""

	def _run(style_text: str, data: dict) -> cv_typesetter.layout.LayoutResult:
		document = cv_typesetter.style_lib.parse_style_text(style_text)
		record = cv_typesetter.data_lib.build_data_record(data)
		return cv_typesetter.layout.layout_document(document, record)

	return _run
