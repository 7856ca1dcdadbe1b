import io
import os
import re

import pytest
from werkzeug.datastructures import FileStorage

from uploads import MAX_IMAGE_SIZE, UploadRejected, save_image

MB = 1024 * 1024


def post_file(client, data, filename, mimetype):
    return client.post(
        "/api/upload",
        data={"file": (io.BytesIO(data), filename, mimetype)},
        content_type="multipart/form-data",
    )


def test_accepts_png_and_serves_it_back(app, client):
    payload = b"\x89PNG\r\n\x1a\n" + b"\0" * MB

    response = post_file(client, payload, "photo.png", "image/png")

    assert response.status_code == 200
    body = response.get_json()
    assert body["success"] is True
    assert re.fullmatch(r"/uploads/[0-9a-f-]{36}\.png", body["url"])
    assert body["url"] == f"/uploads/{body['filename']}"
    assert os.path.getsize(os.path.join(app.config["UPLOAD_FOLDER"], body["filename"])) == len(payload)

    served = client.get(body["url"])
    assert served.status_code == 200
    assert served.data == payload
    served.close()


def test_rejects_files_over_5mb(client):
    response = post_file(client, b"\0" * (6 * MB), "huge.jpg", "image/jpeg")

    assert response.status_code == 400
    assert response.get_json() == {"error": "File too large. Maximum size is 5MB."}


def test_accepts_exactly_5mb(client):
    response = post_file(client, b"\0" * MAX_IMAGE_SIZE, "edge.gif", "image/gif")
    assert response.status_code == 200


def test_rejects_non_images(client):
    response = post_file(client, b"hello", "notes.txt", "text/plain")

    assert response.status_code == 400
    assert "Invalid file type" in response.get_json()["error"]


def test_rejects_missing_file(client):
    response = client.post("/api/upload", data={"caption": "no file"}, content_type="multipart/form-data")

    assert response.status_code == 400
    assert response.get_json() == {"error": "No file received."}


def test_write_failure_is_a_server_error(app, client, tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    app.config["UPLOAD_FOLDER"] = str(blocker / "uploads")

    response = post_file(client, b"GIF89a", "a.gif", "image/gif")

    assert response.status_code == 500
    assert response.get_json() == {"error": "Failed to upload image. Please try again."}


def test_options_allows_cross_origin(client):
    response = client.options("/api/upload")

    assert response.status_code == 200
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.headers["Access-Control-Allow-Methods"] == "POST, OPTIONS"
    assert response.headers["Access-Control-Allow-Headers"] == "Content-Type"


def test_save_image_extension_from_mimetype_when_name_has_none(tmp_path):
    upload = FileStorage(io.BytesIO(b"\xff\xd8\xff"), filename="blob", content_type="image/jpeg")

    filename = save_image(upload, str(tmp_path / "new" / "dir"))

    assert filename.endswith(".jpg")
    assert (tmp_path / "new" / "dir" / filename).read_bytes() == b"\xff\xd8\xff"


def test_save_image_names_are_unique(tmp_path):
    names = {
        save_image(FileStorage(io.BytesIO(b"x"), filename="A.WEBP", content_type="image/webp"), str(tmp_path))
        for _ in range(5)
    }
    assert len(names) == 5
    assert all(name.endswith(".webp") for name in names)


def test_save_image_without_file(tmp_path):
    with pytest.raises(UploadRejected):
        save_image(None, str(tmp_path))


def test_stored_name_keeps_an_image_extension(client):
    response = post_file(client, b"<script>alert(1)</script>", "x.html", "image/png")

    assert response.status_code == 200
    url = response.get_json()["url"]
    assert url.endswith(".png")

    served = client.get(url)
    assert served.mimetype == "image/png"
    served.close()


@pytest.mark.parametrize("filename,mimetype,expected", [
    ("photo.JPEG", "image/jpeg", ".jpeg"),
    ("photo.jpg", "image/jpeg", ".jpg"),
    ("shell.php", "image/gif", ".gif"),
    ("archive.tar.svg", "image/webp", ".webp"),
])
def test_save_image_extension_must_be_an_image_type(tmp_path, filename, mimetype, expected):
    upload = FileStorage(io.BytesIO(b"x"), filename=filename, content_type=mimetype)
    assert save_image(upload, str(tmp_path)).endswith(expected)


def test_request_over_the_body_limit_gets_the_size_error(client):
    response = post_file(client, b"\0" * (20 * MB), "a.png", "image/png")

    assert response.status_code == 400
    assert response.get_json() == {"error": "File too large. Maximum size is 5MB."}
