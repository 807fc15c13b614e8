"""
The httpchain.contrib.emscripten submodule runs requests inside an Emscripten
webassembly environment through the browser's ``XMLHttpRequest``.

Currently this supports Pyodide (https://www.pyodide.org) in web-browser
environments only:

.. code-block:: python

    import httpchain
    from httpchain.contrib.emscripten import BrowserTransport

    res = await httpchain.get(
        "/api/users", transport=BrowserTransport(type="json")
    )
"""

from __future__ import annotations

from .transport import BrowserTransport, parse_response_headers

__all__ = ("BrowserTransport", "parse_response_headers")
