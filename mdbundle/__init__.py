"""
mdbundle: Markdown documents and their images → one paginated PDF.

Use as a library:

    from mdbundle import convert_paths
    result = convert_paths(["docs/"])

Or run the CLI:

    mdbundle convert docs/
"""

from mdbundle.api import JobContext, convert_many, convert_paths, convert_to_pdf, process_input
from mdbundle.config import load_render_config
from mdbundle.errors import MdBundleError
from mdbundle.models import ConvertResult, ProcessedInput, RenderConfig

__all__ = [
    "process_input",
    "convert_to_pdf",
    "convert_paths",
    "convert_many",
    "load_render_config",
    "JobContext",
    "ConvertResult",
    "ProcessedInput",
    "RenderConfig",
    "MdBundleError",
]
