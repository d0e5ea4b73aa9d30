"""pytest configuration and fixtures."""

import json
from unittest.mock import Mock

import pytest
import requests

from src.data.cache import ResponseCache
from src.data.database import Database
from src.data.persistence import ContentStore
from src.data.upsert import RecordUpserter


class FakeResponse:
    """stand-in for requests.Response with just what the sync code touches."""

    def __init__(self, status_code=200, json_data=None, text="", content=None):
        self.status_code = status_code
        if json_data is not None:
            text = json.dumps(json_data)
        self.text = text
        self.content = content if content is not None else text.encode("utf-8")

    def json(self):
        return json.loads(self.text)

    def iter_content(self, chunk_size=1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False


ARCHIVE_PAGE = """<html>
<head>
<title> APOD: 2020 January 1 - Betelgeuse Imagined
</title>
</head>
<body BGCOLOR="#F4F4FF" text="#000000" link="#0000FF" vlink="#7F0F9F" alink="#FF0000">
<center>
<h1> Astronomy Picture of the Day </h1>
<p>
<a href="archivepix.html">Discover the cosmos!</a>
<p>
2020 January 1
<br>
<a href="image/2001/BetelgeuseImagined_EsoCalcada_1080.jpg">
<IMG SRC="image/2001/BetelgeuseImagined_EsoCalcada_960.jpg" alt="See Explanation." style="max-width:100%"></a>
</center>

<center>
<b> Betelgeuse Imagined </b> <br>
<b> Illustration Credit &amp; Copyright: </b>
<a href="https://www.eso.org/">ESO</a>, L. Calcada
</center> <p>

<b> Explanation: </b>
Betelgeuse is in the news &amp; notable.
The <a href="ap191231.html">red supergiant</a> star has been dimming.
<p> <center>
<b> Tomorrow's picture: </b>new decade
</center>
</body>
</html>
"""

VIDEO_PAGE = """<html>
<head><title> APOD: 2020 January 2 - A Total Solar Eclipse </title></head>
<body>
<center>
<h1> Astronomy Picture of the Day </h1>
<p>
<iframe width="960" height="540" src="https://www.youtube.com/embed/abc123?rel=0" frameborder="0"></iframe>
</center>
<center>
<b> A Total Solar Eclipse </b> <br>
</center> <p>
<b> Explanation: </b> The Moon covered the Sun.
<p> <center>
<b> Tomorrow's picture: </b>more eclipses
</center>
</body>
</html>
"""

MALFORMED_PAGE = "<html><body><p>The page you are looking for has moved.</p></body></html>"


def apod_payload(day, title, media_type="image", **extra):
    """one entry as returned by the daily photo api."""
    payload = {
        "date": day,
        "title": title,
        "explanation": f"Explanation for {title}.",
        "url": f"https://apod.nasa.gov/apod/image/{day}_960.jpg",
        "hdurl": f"https://apod.nasa.gov/apod/image/{day}_2048.jpg",
        "media_type": media_type,
        "copyright": "Jane Doe",
    }
    payload.update(extra)
    return payload


@pytest.fixture
def db():
    """in-memory sqlite database with all tables."""
    database = Database("sqlite://")
    database.create_tables()
    yield database
    database.close()


@pytest.fixture
def db_session(db):
    """session on the test database."""
    with db.get_session() as session:
        yield session


@pytest.fixture
def store(db):
    return ContentStore(db)


@pytest.fixture
def upserter(store):
    return RecordUpserter(store)


@pytest.fixture
def cache(tmp_path):
    return ResponseCache(tmp_path / "cache")


@pytest.fixture
def fake_response():
    return FakeResponse


@pytest.fixture
def no_sleep():
    """sleep replacement that records calls instead of blocking."""
    return Mock()


@pytest.fixture
def archive_page():
    return ARCHIVE_PAGE


@pytest.fixture
def video_page():
    return VIDEO_PAGE


@pytest.fixture
def malformed_page():
    return MALFORMED_PAGE


@pytest.fixture
def make_apod_payload():
    return apod_payload
