"""mite: a content-to-program static site compiler.

mite turns a directory of markdown pages and ``.mite`` templates into a Python
program whose execution writes the site's HTML. The pipeline is:

- markdown: block and inline rendering of pages, with front matter extraction.
- transpiler: lowering of templates and rendered pages to instruction streams.
- content and codegen: site discovery and generation of the program source.
- build: staleness checks, writing the program, compiling and running it.

The generated program imports :mod:`mite.runtime` and nothing else from mite.
The main entry point is the CLI module.
"""

__all__ = ["__version__"]
__version__ = "0.1.0"
