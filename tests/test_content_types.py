from dirmirror.content_types import ContentFormat, is_acceptable, lookup


def test_lookup_maps_known_suffixes():
    assert lookup("notes.txt") == ContentFormat.TEXT_PLAIN
    assert lookup("data.json") == ContentFormat.APPLICATION_JSON
    assert lookup("photo.jpeg") == ContentFormat.IMAGE_JPEG
    assert lookup("photo.jpg") == ContentFormat.IMAGE_JPEG
    assert lookup("index.html") == ContentFormat.TEXT_HTML
    assert lookup("feed.xml") == ContentFormat.APPLICATION_XML


def test_lookup_is_suffix_only():
    assert lookup("archive.tar.gz") is None
    assert lookup("README") is None
    assert lookup("json") is None
    assert lookup("DATA.JSON") is None


def test_unspecified_request_is_always_acceptable():
    assert is_acceptable(None, ContentFormat.UNDEFINED)
    assert is_acceptable(ContentFormat.IMAGE_PNG, ContentFormat.UNDEFINED)


def test_matching_format_is_acceptable():
    assert is_acceptable(ContentFormat.APPLICATION_JSON, ContentFormat.APPLICATION_JSON)
    assert not is_acceptable(ContentFormat.APPLICATION_JSON, ContentFormat.IMAGE_PNG)
    assert not is_acceptable(ContentFormat.APPLICATION_JSON, ContentFormat.TEXT_PLAIN)


def test_unformatted_node_only_serves_plain_text():
    assert is_acceptable(None, ContentFormat.TEXT_PLAIN)
    assert not is_acceptable(None, ContentFormat.APPLICATION_JSON)
