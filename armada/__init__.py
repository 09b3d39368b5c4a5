"""
Armada: lazily-loaded, hierarchical command line tools.

A CLI owns a Loader that merges priority-ordered sources (Python blocks,
definition files and directories) into one namespace tree. Each invocation
resolves a tool, binds the argv to its schema with the ArgParser and runs it
through a middleware chain (help, usage errors, verbosity).

Example
    import sys

    from armada import CLI

    def define(tool):
        with tool.tool("greet") as greet:
            greet.required("name")

            @greet.run
            def _(context):
                print("hello %s" % context["name"])

    raise SystemExit(CLI(executable_name="hello").add_block(define).run(sys.argv[1:]))
"""
__title__ = 'armada'
__author__ = 'Eiko Reishin (影皇嶺臣)'
__license__ = 'MIT'
# Kept in sync with pyproject.toml.
__version__ = "0.1.0"

from . import acceptors
from .arguments import *
from .cli import *
from .config import *
from .context import *
from .faults import *
from .help import *
from .loader import *
from .middleware import *
from .parser import *
from .sources import *
from .tools import *
from .utils import *

VersionInfo = __import__("collections").namedtuple("VersionInfo", (
    "major",
    "minor",
    "micro",
    "releaselevel",
    "serial",
    "metadata"
))

version_info = VersionInfo(0, 1, 0, "final", 0, "")

__all__ = (
    "__title__",
    "__author__",
    "__license__",
    "__version__",
    "version_info",
    "acceptors",
)

# Load the exposed API of the schema elements
__all__ += arguments.__all__  # type: ignore[attr-defined]
# Load the exposed API of the command line entry point
__all__ += cli.__all__  # type: ignore[attr-defined]
# Load the exposed API of the configuration
__all__ += config.__all__  # type: ignore[attr-defined]
# Load the exposed API of the execution context
__all__ += context.__all__  # type: ignore[attr-defined]
# Load the exposed API of the faults
__all__ += faults.__all__  # type: ignore[attr-defined]
# Load the exposed API of the help renderer
__all__ += help.__all__  # type: ignore[attr-defined]
# Load the exposed API of the loader
__all__ += loader.__all__  # type: ignore[attr-defined]
# Load the exposed API of the middleware
__all__ += middleware.__all__  # type: ignore[attr-defined]
# Load the exposed API of the parser
__all__ += parser.__all__  # type: ignore[attr-defined]
# Load the exposed API of the sources
__all__ += sources.__all__  # type: ignore[attr-defined]
# Load the exposed API of the tool nodes
__all__ += tools.__all__  # type: ignore[attr-defined]
# Load the exposed API of the utilities
__all__ += utils.__all__  # type: ignore[attr-defined]
