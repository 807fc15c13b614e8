from __future__ import annotations

import io

import pytest

from httpchain.fields import RequestField
from httpchain.filepost import (
    Form,
    choose_boundary,
    encode_multipart_formdata,
    iter_field_objects,
)

BOUNDARY = "!! test boundary !!"
BOUNDARY_BYTES = BOUNDARY.encode()


class TestIterFieldObjects:
    def test_dict(self) -> None:
        fields = list(iter_field_objects(dict(a="b", c="d")))
        assert [field.name for field in fields] == ["a", "c"]
        assert all(isinstance(field, RequestField) for field in fields)

    def test_request_fields_pass_through(self) -> None:
        field = RequestField("a", "b")
        assert list(iter_field_objects([field])) == [field]


class TestMultipartEncoding:
    @pytest.mark.parametrize(
        "fields", [dict(k="v", k2="v2"), [("k", "v"), ("k2", "v2")]]
    )
    def test_input_datastructures(self, fields: object) -> None:
        encoded, _ = encode_multipart_formdata(fields, boundary=BOUNDARY)  # type: ignore[arg-type]
        assert encoded.count(BOUNDARY_BYTES) == 3

    @pytest.mark.parametrize(
        "fields",
        [
            [("k", "v"), ("k2", "v2")],
            [("k", b"v"), ("k2", b"v2")],
            [("k", b"v"), ("k2", "v2")],
        ],
    )
    def test_field_encoding(self, fields: object) -> None:
        encoded, content_type = encode_multipart_formdata(fields, boundary=BOUNDARY)  # type: ignore[arg-type]
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"\r\n'
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k2"\r\n'
            b"\r\n"
            b"v2\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert encoded == expected

        assert content_type == "multipart/form-data; boundary=" + str(BOUNDARY)

    def test_filename(self) -> None:
        fields = [("k", ("somename", b"v"))]

        encoded, content_type = encode_multipart_formdata(fields, boundary=BOUNDARY)
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"; filename="somename"\r\n'
            b"Content-Type: application/octet-stream\r\n"
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert encoded == expected

    def test_explicit(self) -> None:
        fields = [("k", ("somefile.txt", b"v", "image/jpeg"))]

        encoded, _ = encode_multipart_formdata(fields, boundary=BOUNDARY)
        assert b"Content-Type: image/jpeg\r\n" in encoded

    def test_request_fields(self) -> None:
        fields = [
            RequestField(
                "k",
                b"v",
                filename="somefile.txt",
                headers={"Content-Type": "image/jpeg"},
            )
        ]

        encoded, _ = encode_multipart_formdata(fields, boundary=BOUNDARY)
        expected = (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b"Content-Type: image/jpeg\r\n"
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )

        assert encoded == expected

    def test_random_boundary(self) -> None:
        _, content_type = encode_multipart_formdata({"k": "v"})
        boundary = content_type.split("boundary=")[1]
        assert len(boundary) == 32
        assert boundary != choose_boundary()


class TestForm:
    def test_append(self) -> None:
        form = Form({"username": "blakeembrey"})
        form.append("avatar", b"\x89PNG", filename="avatar.png")
        form.append("notes", io.BytesIO(b"x"), filename="notes", content_type="text/markdown")
        form.append("raw", "value", content_type="text/csv")

        assert len(form) == 4
        fields = list(form)
        assert fields[1].headers["Content-Type"] == "image/png"
        assert fields[2].headers["Content-Type"] == "text/markdown"
        assert fields[3].filename is None
        assert fields[3].headers["Content-Type"] == "text/csv"

    def test_encode(self) -> None:
        form = Form()
        form.append("k", "v")
        encoded, content_type = form.encode(boundary=BOUNDARY)

        assert encoded == (
            b"--" + BOUNDARY_BYTES + b"\r\n"
            b'Content-Disposition: form-data; name="k"\r\n'
            b"\r\n"
            b"v\r\n"
            b"--" + BOUNDARY_BYTES + b"--\r\n"
        )
        assert content_type == "multipart/form-data; boundary=" + BOUNDARY

    def test_empty_form(self) -> None:
        encoded, _ = Form().encode(boundary=BOUNDARY)
        assert encoded == b"--" + BOUNDARY_BYTES + b"--\r\n"
