from __future__ import annotations

import json
import logging
from concurrent.futures import Executor, Future
from pathlib import Path
from typing import Any, Callable, Protocol
from urllib.parse import urlparse

import requests

from sources.errors import FetchError, InvalidInputError
from sources.types import LoadDataRequest

log = logging.getLogger(__name__)

# callback(error, data)
LoadCallback = Callable[[Exception | None, Any], None]
# Schedules a continuation back onto the worker thread.
Post = Callable[[Callable[[], None]], None]


class DataLoader(Protocol):
    """
    Strategy that obtains raw GeoJSON for a `loadData` request.

    Implementations call `callback(error, data)` exactly once, either
    synchronously or later on the worker thread.
    """

    def load(self, request: LoadDataRequest, callback: LoadCallback) -> None: ...


class DefaultDataLoader(DataLoader):
    """
    Fetches `request.url` or parses literal `request.data`.

    Remote locations must carry an explicit origin (http/https/file) or be an
    absolute path. With an `executor` and `post`, remote fetches run off the
    worker thread and the callback is posted back to it.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 30.0,
        session: requests.Session | None = None,
        executor: Executor | None = None,
        post: Post | None = None,
    ):
        self.timeout_s = float(timeout_s)
        self.session = session or requests.Session()
        self.executor = executor
        self.post = post

    def load(self, request: LoadDataRequest, callback: LoadCallback) -> None:
        has_url = bool(request.url)
        has_data = request.data is not None
        if has_url and has_data:
            return callback(InvalidInputError("Supply either `url` or `data`, not both."), None)

        if has_url:
            return self._load_remote(str(request.url), callback)

        try:
            data = parse_literal(request.data)
        except InvalidInputError as e:
            return callback(e, None)
        return callback(None, data)

    def _load_remote(self, url: str, callback: LoadCallback) -> None:
        try:
            fetch = self._fetcher_for(url)
        except InvalidInputError as e:
            return callback(e, None)

        if self.executor is None or self.post is None:
            try:
                data = fetch()
            except FetchError as e:
                return callback(e, None)
            return callback(None, data)

        future = self.executor.submit(fetch)

        def _done(f: Future) -> None:
            err = f.exception()
            if err is not None:
                self.post(lambda: callback(err, None))
            else:
                data = f.result()
                self.post(lambda: callback(None, data))

        future.add_done_callback(_done)

    def _fetcher_for(self, url: str) -> Callable[[], Any]:
        parsed = urlparse(url)
        scheme = parsed.scheme.lower()
        if scheme in {"http", "https"}:
            return lambda: self._get_json(url)
        if scheme == "file":
            return lambda: _read_json_file(Path(parsed.path))
        if not scheme and url.startswith("/"):
            return lambda: _read_json_file(Path(url))
        raise InvalidInputError(
            f"Remote location must be an absolute path or include an explicit origin: {url}"
        )

    def _get_json(self, url: str) -> Any:
        log.info("fetching geojson", extra={"extra": {"url": url}})
        try:
            resp = self.session.get(url, timeout=self.timeout_s)
            resp.raise_for_status()
            return resp.json()
        except requests.RequestException as e:
            # requests' JSON decode errors are RequestExceptions too.
            raise FetchError(str(e)) from e


def parse_literal(data: Any) -> dict[str, Any]:
    """
    Validate literal input: JSON text or an already-parsed object.

    Anything that does not end up as a JSON object is rejected.
    """
    if data is None:
        raise InvalidInputError()
    if isinstance(data, (str, bytes)):
        try:
            data = json.loads(data)
        except (ValueError, UnicodeDecodeError) as e:
            raise InvalidInputError() from e
    if not isinstance(data, dict):
        raise InvalidInputError()
    return data


def _read_json_file(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError) as e:
        raise FetchError(str(e)) from e
