from __future__ import annotations

import mimetypes
import re
import typing

_TYPE_FIELD_VALUE = typing.Union[str, bytes, int, typing.IO[typing.Any]]
_TYPE_FIELD_VALUE_TUPLE = typing.Union[
    _TYPE_FIELD_VALUE,
    typing.Tuple[str, _TYPE_FIELD_VALUE],
    typing.Tuple[str, _TYPE_FIELD_VALUE, str],
]


def guess_content_type(
    filename: str | None, default: str = "application/octet-stream"
) -> str:
    """
    Guess the "Content-Type" of a file.

    :param filename:
        The filename to guess the "Content-Type" of using :mod:`mimetypes`.
    :param default:
        If no "Content-Type" can be guessed, default to `default`.
    """
    if filename:
        return mimetypes.guess_type(filename)[0] or default
    return default


_HTML5_REPLACEMENTS = {
    "\u0022": "%22",
    # Replace "\" with "\\".
    "\u005C": "\u005C\u005C",
}

# All control characters from 0x00 to 0x1F *except* 0x1B.
_HTML5_REPLACEMENTS.update(
    {chr(cc): f"%{cc:02X}" for cc in range(0x00, 0x1F + 1) if cc not in (0x1B,)}
)

_HTML5_PATTERN = re.compile(
    "|".join(re.escape(needle) for needle in _HTML5_REPLACEMENTS)
)


def format_header_param(name: str, value: str | bytes) -> str:
    """
    Format and quote a single header parameter the way browsers do for
    ``multipart/form-data`` (the HTML5 strategy): quotes, backslashes and
    control characters are escaped, everything else is sent as UTF-8.

    :param name:
        The name of the parameter, a string expected to be ASCII only.
    :param value:
        The value of the parameter, provided as ``bytes`` or ``str``.
    """
    if isinstance(value, bytes):
        value = value.decode("utf-8")

    value = _HTML5_PATTERN.sub(lambda match: _HTML5_REPLACEMENTS[match.group(0)], value)

    return f'{name}="{value}"'


class RequestField:
    """
    One part of a multipart form.

    :param name:
        The name of this request field.
    :param data:
        The value: text, bytes, an integer or a readable file object. Files
        are read when the form is encoded.
    :param filename:
        An optional filename, which makes the part a file upload.
    :param headers:
        An optional dict-like object of headers to initially use for the field.
    """

    def __init__(
        self,
        name: str,
        data: _TYPE_FIELD_VALUE,
        filename: str | None = None,
        headers: typing.Mapping[str, str] | None = None,
    ) -> None:
        self._name = name
        self._filename = filename
        self.data = data
        self.headers: dict[str, str | None] = {}
        if headers:
            self.headers = dict(headers)

    @property
    def name(self) -> str:
        return self._name

    @property
    def filename(self) -> str | None:
        return self._filename

    @classmethod
    def from_tuples(cls, fieldname: str, value: _TYPE_FIELD_VALUE_TUPLE) -> RequestField:
        """
        Build a field from a plain value or a ``(filename, data[, mime type])``
        tuple. For example::

            'foo': 'bar',
            'fakefile': ('foofile.txt', 'contents of foofile'),
            'typedfile': ('bazfile.bin', open('bazfile', 'rb'), 'image/jpeg'),
        """
        filename: str | None
        content_type: str | None

        if isinstance(value, tuple):
            if len(value) == 3:
                filename, data, content_type = typing.cast(
                    typing.Tuple[str, _TYPE_FIELD_VALUE, str], value
                )
            else:
                filename, data = typing.cast(typing.Tuple[str, _TYPE_FIELD_VALUE], value)
                content_type = guess_content_type(filename)
        else:
            filename = None
            content_type = None
            data = value

        field = cls(fieldname, data, filename=filename)
        field.make_multipart(content_type=content_type)
        return field

    def render_headers(self) -> str:
        """
        Renders the headers for this request field.
        """
        lines = []

        sort_keys = ["Content-Disposition", "Content-Type", "Content-Location"]
        for sort_key in sort_keys:
            if self.headers.get(sort_key):
                lines.append(f"{sort_key}: {self.headers[sort_key]}")

        for header_name, header_value in self.headers.items():
            if header_name not in sort_keys and header_value:
                lines.append(f"{header_name}: {header_value}")

        lines.append("\r\n")
        return "\r\n".join(lines)

    def make_multipart(
        self,
        content_disposition: str | None = None,
        content_type: str | None = None,
        content_location: str | None = None,
    ) -> None:
        """
        Set the "Content-Disposition", "Content-Type" and "Content-Location"
        headers of this part. The disposition defaults to ``form-data`` and
        carries the field name and filename.
        """
        parts = [content_disposition or "form-data", format_header_param("name", self._name)]
        if self._filename is not None:
            parts.append(format_header_param("filename", self._filename))

        self.headers["Content-Disposition"] = "; ".join(parts)
        self.headers["Content-Type"] = content_type
        self.headers["Content-Location"] = content_location

    def read_data(self) -> bytes:
        """The encoded value of this part. File objects are read to the end."""
        data = self.data
        read = getattr(data, "read", None)
        if read is not None:
            data = read()
        if isinstance(data, int):
            data = str(data)
        if isinstance(data, str):
            return data.encode("utf-8")
        return bytes(data)
