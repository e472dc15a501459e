"""Script ``http`` object: JSON requests over a requests.Session.

Requests run off-thread through the AsyncCaller. A successful response
is decoded as JSON and handed to the callback; non-2xx statuses raise
through raise_for_status() and reach the errback and the console.

Usage from a script:
    http.get("https://api.example.com/data", callback=lambda d: widget.setValue("v", d["v"]))
    http.post(url, {"on": True}, {"headers": {"X-Key": "abc"}})
"""

import logging
from typing import Any, Callable, Dict, Optional

import requests

from core.calls import AsyncCaller

logger = logging.getLogger(__name__)


class HttpAPI:
    """http.get/post/put/delete/request returning a Future."""

    def __init__(self, caller: AsyncCaller, session: Optional[requests.Session] = None,
                 timeout: float = 10):
        self._caller = caller
        self._session = session or requests.Session()
        self._timeout = timeout

    def _fetch(self, method: str, url: str, body: Any, options: Dict[str, Any]) -> Any:
        headers = dict(options.get("headers") or {})
        kwargs: Dict[str, Any] = {
            "headers": headers,
            "timeout": options.get("timeout", self._timeout),
        }
        if options.get("params"):
            kwargs["params"] = options["params"]
        if body is not None:
            kwargs["json"] = body
        elif options.get("body") is not None:
            kwargs["data"] = options["body"]

        resp = self._session.request(method, url, **kwargs)
        resp.raise_for_status()
        if not resp.content:
            return None
        return resp.json()

    def _call(self, method: str, url: str, body: Any, options: Optional[Dict[str, Any]],
              callback: Optional[Callable], errback: Optional[Callable]):
        label = f"[HTTP] {method} {url}"
        logger.debug("%s", label)

        def on_result(data):
            self._caller.notify("info", label, [data])
            if callback:
                callback(data)

        return self._caller.call(
            label, self._fetch, method, url, body, dict(options or {}),
            callback=on_result, errback=errback,
        )

    def get(self, url: str, options: Optional[Dict[str, Any]] = None,
            callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        return self._call("GET", url, None, options, callback, errback)

    def post(self, url: str, body: Any = None, options: Optional[Dict[str, Any]] = None,
             callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        return self._call("POST", url, body, options, callback, errback)

    def put(self, url: str, body: Any = None, options: Optional[Dict[str, Any]] = None,
            callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        return self._call("PUT", url, body, options, callback, errback)

    def delete(self, url: str, options: Optional[Dict[str, Any]] = None,
               callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        return self._call("DELETE", url, None, options, callback, errback)

    def request(self, url: str, options: Optional[Dict[str, Any]] = None,
                callback: Optional[Callable] = None, errback: Optional[Callable] = None):
        """Generic request; options['method'] defaults to GET."""
        options = dict(options or {})
        method = str(options.pop("method", "GET")).upper()
        body = options.pop("json", None)
        return self._call(method, url, body, options, callback, errback)

    def close(self):
        self._session.close()
