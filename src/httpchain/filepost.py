from __future__ import annotations

import binascii
import os
import typing
from io import BytesIO

from .fields import _TYPE_FIELD_VALUE, _TYPE_FIELD_VALUE_TUPLE, RequestField

_TYPE_FIELDS_SEQUENCE = typing.Sequence[
    typing.Union[typing.Tuple[str, _TYPE_FIELD_VALUE_TUPLE], RequestField]
]
_TYPE_FIELDS = typing.Union[
    _TYPE_FIELDS_SEQUENCE,
    typing.Mapping[str, _TYPE_FIELD_VALUE_TUPLE],
]


def choose_boundary() -> str:
    """
    Our embarrassingly-simple replacement for mimetools.choose_boundary.
    """
    return binascii.hexlify(os.urandom(16)).decode()


def iter_field_objects(fields: _TYPE_FIELDS) -> typing.Iterator[RequestField]:
    """
    Iterate over fields.

    Supports list of (k, v) tuples and dicts, and lists of
    :class:`~httpchain.fields.RequestField`.
    """
    iterable: typing.Iterable[
        typing.Union[RequestField, typing.Tuple[str, _TYPE_FIELD_VALUE_TUPLE]]
    ]

    if isinstance(fields, typing.Mapping):
        iterable = fields.items()
    else:
        iterable = fields

    for field in iterable:
        if isinstance(field, RequestField):
            yield field
        else:
            yield RequestField.from_tuples(*field)


def encode_multipart_formdata(
    fields: _TYPE_FIELDS, boundary: str | None = None
) -> tuple[bytes, str]:
    """
    Encode a dictionary of ``fields`` using the multipart/form-data MIME format.

    :param fields:
        Dictionary of fields or list of (key, :class:`~httpchain.fields.RequestField`).

    :param boundary:
        If not specified, then a random boundary will be generated using
        :func:`httpchain.filepost.choose_boundary`.

    :returns: ``(body, content_type)``
    """
    body = BytesIO()
    if boundary is None:
        boundary = choose_boundary()

    for field in iter_field_objects(fields):
        body.write(f"--{boundary}\r\n".encode("latin-1"))
        body.write(field.render_headers().encode("utf-8"))
        body.write(field.read_data())
        body.write(b"\r\n")

    body.write(f"--{boundary}--\r\n".encode("latin-1"))

    content_type = f"multipart/form-data; boundary={boundary}"

    return body.getvalue(), content_type


class Form:
    """
    An ordered multipart form, used as a request body.

    >>> form = Form({"username": "blakeembrey"})
    >>> form.append("avatar", open("avatar.png", "rb"), filename="avatar.png")

    :class:`~httpchain.plugins.stringify` encodes it as ``multipart/form-data``.
    """

    def __init__(self, fields: _TYPE_FIELDS | None = None) -> None:
        self.fields: list[RequestField] = []
        if fields:
            self.fields.extend(iter_field_objects(fields))

    def append(
        self,
        name: str,
        value: _TYPE_FIELD_VALUE,
        filename: str | None = None,
        content_type: str | None = None,
    ) -> None:
        if filename is None and content_type is None:
            field = RequestField.from_tuples(name, value)
        elif content_type is None:
            field = RequestField.from_tuples(name, (typing.cast(str, filename), value))
        else:
            field = RequestField(name, value, filename=filename)
            field.make_multipart(content_type=content_type)
        self.fields.append(field)

    def __len__(self) -> int:
        return len(self.fields)

    def __iter__(self) -> typing.Iterator[RequestField]:
        return iter(self.fields)

    def encode(self, boundary: str | None = None) -> tuple[bytes, str]:
        """Encode the form; returns ``(body, content_type)``."""
        return encode_multipart_formdata(self.fields, boundary=boundary)
