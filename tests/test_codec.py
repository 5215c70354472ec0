"""Tests for field value encoding and the legacy serialized decode."""

from sitesync.sync.codec import (
    JSON_ENCODING,
    Composite,
    Scalar,
    decode_field,
    decode_legacy,
    encode_field,
    is_php_serialized,
)


class TestEncodeField:
    """Tests for encode_field() write-time tagging."""

    def test_string_is_scalar(self):
        assert encode_field("header") == Scalar("header")

    def test_serialized_looking_string_stays_scalar(self):
        assert encode_field('a:1:{i:0;s:1:"x";}') == Scalar('a:1:{i:0;s:1:"x";}')

    def test_list_is_composite_json(self):
        encoded = encode_field([{"id": "abc", "name": "section"}])
        assert isinstance(encoded, Composite)
        assert encoded.encoding == JSON_ENCODING
        assert encoded.data == '[{"id": "abc", "name": "section"}]'

    def test_numbers_and_bools_are_composite(self):
        assert encode_field(3) == Composite("3")
        assert encode_field(False) == Composite("false")

    def test_non_ascii_kept(self):
        assert encode_field({"t": "Überschrift"}).data == '{"t": "Überschrift"}'


class TestDecodeField:
    """Tests for decode_field()."""

    def test_json_tag_decoded(self):
        assert decode_field('{"a": [1, 2]}', "json") == {"a": [1, 2]}

    def test_untagged_string_returned(self):
        assert decode_field("plain", None) == "plain"

    def test_json_looking_untagged_string_not_decoded(self):
        assert decode_field("[1, 2]", None) == "[1, 2]"

    def test_bad_json_kept_as_text(self):
        assert decode_field("{not json", "json") == "{not json"

    def test_unknown_encoding_kept(self):
        assert decode_field("x", "base64") == "x"

    def test_non_string_untagged_passed_through(self):
        assert decode_field({"a": 1}, None) == {"a": 1}

    def test_round_trip(self):
        value = {"elements": [{"id": "x1", "settings": {"tag": "h1"}}]}
        encoded = encode_field(value)
        assert decode_field(encoded.data, encoded.encoding) == value


class TestLegacyDecode:
    """Tests for the PHP-serialized compatibility decode."""

    def test_is_php_serialized_shapes(self):
        assert is_php_serialized("N;")
        assert is_php_serialized("b:1;")
        assert is_php_serialized("i:42;")
        assert is_php_serialized('s:3:"abc";')
        assert is_php_serialized('a:1:{i:0;s:1:"x";}')
        assert not is_php_serialized("plain text")
        assert not is_php_serialized("a:b")
        assert not is_php_serialized("")

    def test_list_array_decoded_to_list(self):
        assert decode_legacy('a:2:{i:0;s:1:"x";i:1;s:1:"y";}') == ["x", "y"]

    def test_assoc_array_decoded_to_dict(self):
        raw = 'a:2:{s:4:"name";s:3:"FAQ";s:5:"count";i:2;}'
        assert decode_legacy(raw) == {"name": "FAQ", "count": 2}

    def test_nested_arrays(self):
        raw = 'a:1:{i:0;a:1:{s:2:"id";s:2:"x1";}}'
        assert decode_legacy(raw) == [{"id": "x1"}]

    def test_scalar_decoded(self):
        assert decode_legacy("i:7;") == 7

    def test_plain_string_untouched(self):
        assert decode_legacy("hello") == "hello"

    def test_broken_serialization_kept(self):
        raw = 'a:2:{i:0;s:1:"x";}'
        assert decode_legacy(raw) == raw

    def test_untagged_value_in_legacy_file_decoded(self):
        assert decode_field('a:1:{i:0;s:1:"x";}', None, legacy=True) == ["x"]

    def test_untagged_value_in_current_file_kept(self):
        assert decode_field('a:1:{i:0;s:1:"x";}', None) == 'a:1:{i:0;s:1:"x";}'
        assert decode_field("N;", None) == "N;"
