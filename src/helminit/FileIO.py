"""Archive source streams.

Provides the byte streams the rest of the package reads archives from:

Classes:
    RemoteStream: Sequential, read-only stream over an HTTP(S) download.
    PeekableStream: Wrapper that lets callers look at leading bytes without
        consuming them, used for format detection.

Functions:
    open_archive_source: Open a URL, ``file://`` URL or local path for reading.
"""

import io
import logging
from pathlib import Path
from urllib.parse import urlparse
from urllib.request import url2pathname

import httpx

from .Errors import DownloadError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 128 * 1024  # 128 KiB


class RemoteStream(io.RawIOBase):
    """Read-only raw stream backed by a streamed HTTP GET.

    Unlike a ranged reader, this stream never seeks: the response body is
    consumed front to back in chunks of `chunk_size`, so memory use stays
    bounded by a single chunk regardless of archive size.

    Attributes:
        url (str): Remote resource URL.
        client (httpx.Client): HTTP client used for the request.
    """

    def __init__(self, url: str, client: httpx.Client | None = None, chunk_size: int = CHUNK_SIZE):
        """Start the download of `url`.

        Args:
            url (str): HTTP(S) URL of the archive.
            client (httpx.Client | None): Client to use. When omitted a
                client is created and closed together with the stream.
            chunk_size (int): Size of the chunks pulled from the response.

        Raises:
            DownloadError: If the request fails or the server does not
                answer with 200.
        """
        self.url = url
        self._owns_client = client is None
        self.client = client or httpx.Client(
            headers={"Accept": "*/*"},
            follow_redirects=True,
            timeout=httpx.Timeout(10.0, read=300.0),
        )
        self._pending = b""
        self._response = None

        try:
            request = self.client.build_request("GET", url)
            self._response = self.client.send(request, stream=True)
        except httpx.HTTPError as e:
            self._close_client()
            raise DownloadError(f"Unable to download {url}: {e}") from e

        if self._response.status_code != 200:
            status = self._response.status_code
            self._response.close()
            self._close_client()
            raise DownloadError(f"Unable to download {url}: server returned {status}")

        self._chunks = self._response.iter_bytes(chunk_size)

    def readable(self) -> bool:
        return True

    def readinto(self, buffer) -> int:
        """Fill `buffer` with the next bytes of the body; 0 means EOF."""
        if not self._pending:
            try:
                for chunk in self._chunks:
                    if chunk:
                        self._pending = chunk
                        break
            except httpx.HTTPError as e:
                raise DownloadError(f"Unable to download {self.url}: {e}") from e
        n = min(len(buffer), len(self._pending))
        buffer[:n] = self._pending[:n]
        self._pending = self._pending[n:]
        return n

    def _close_client(self):
        if self._owns_client:
            self.client.close()

    def close(self):
        """Release the response and, if we created it, the HTTP client."""
        if not self.closed and self._response is not None:
            try:
                self._response.close()
            finally:
                self._close_client()
        super().close()


class PeekableStream(io.RawIOBase):
    """Raw stream wrapper supporting non-destructive look-ahead.

    `peek(n)` pulls up to `n` bytes from the wrapped stream into an internal
    buffer and returns them; later reads are served from that buffer first,
    so detection code can sample magic bytes and leave the stream exactly
    where it was. Closing the wrapper closes the wrapped stream.
    """

    def __init__(self, source):
        self._source = source
        self._buffer = b""

    def readable(self) -> bool:
        return True

    def peek(self, size: int) -> bytes:
        """Return up to `size` leading bytes without consuming them.

        Fewer bytes are returned only when the wrapped stream hits EOF.
        """
        while len(self._buffer) < size:
            chunk = self._source.read(size - len(self._buffer))
            if not chunk:
                break
            self._buffer += chunk
        return self._buffer[:size]

    def readinto(self, buffer) -> int:
        # Serve peeked bytes first, then top up from the source
        n = min(len(buffer), len(self._buffer))
        buffer[:n] = self._buffer[:n]
        self._buffer = self._buffer[n:]
        if n < len(buffer):
            data = self._source.read(len(buffer) - n)
            if data:
                buffer[n:n + len(data)] = data
                n += len(data)
        return n

    def close(self):
        if not self.closed:
            self._source.close()
        super().close()


def copy_to_file(source, target_path: Path, progress_callback=None) -> int:
    """Stream `source` into `target_path` chunk by chunk; return bytes written."""
    written = 0
    with open(target_path, "wb") as target_file:
        # The flow is archive source -> decompressor -> archive engine -> local file
        while chunk := source.read(CHUNK_SIZE):
            target_file.write(chunk)
            written += len(chunk)
            if progress_callback:
                progress_callback(len(chunk))
    return written


def open_archive_source(location: str):
    """Open the archive at `location` for sequential reading.

    `location` may be an ``http(s)://`` URL, a ``file://`` URL or a plain
    filesystem path.

    Raises:
        DownloadError: If the archive cannot be fetched or opened.
    """
    scheme = urlparse(location).scheme
    if scheme in ("http", "https"):
        logger.info("Downloading Helm from %s", location)
        return RemoteStream(location)

    path = Path(url2pathname(urlparse(location).path)) if scheme == "file" else Path(location)
    logger.info("Reading Helm archive %s", path)
    try:
        return open(path, "rb")
    except OSError as e:
        raise DownloadError(f"Unable to open archive {location}: {e}") from e
