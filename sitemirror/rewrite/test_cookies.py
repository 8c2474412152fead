import pytest

from sitemirror.rewrite.cookies import CookieAttributes, CookieParseError


class TestParse:
    def test_name_value_and_attributes(self):
        cookie = CookieAttributes.parse("sid=abc; Domain=.origin.example; Path=/blog; HttpOnly")

        assert cookie.name == "sid"
        assert cookie.value == "abc"
        assert cookie.domain == ".origin.example"
        assert cookie.path == "/blog"
        assert cookie.has_path
        assert not cookie.secure

    def test_value_may_contain_equals(self):
        cookie = CookieAttributes.parse("token=a=b==; Secure")

        assert cookie.value == "a=b=="
        assert cookie.secure

    def test_expires_with_comma_stays_one_attribute(self):
        raw = "a=b; Expires=Wed, 21 Oct 2015 07:28:00 GMT; Max-Age=60"
        cookie = CookieAttributes.parse(raw)

        assert cookie.attributes == [
            ("Expires", "Wed, 21 Oct 2015 07:28:00 GMT"),
            ("Max-Age", "60"),
        ]

    def test_attribute_lookup_is_case_insensitive(self):
        cookie = CookieAttributes.parse("a=b; domain=origin.example; SECURE")

        assert cookie.domain == "origin.example"
        assert cookie.secure

    def test_missing_path_defaults_to_root(self):
        cookie = CookieAttributes.parse("a=b")

        assert cookie.path == "/"
        assert not cookie.has_path

    @pytest.mark.parametrize("raw", ["", "novalue", "=orphan", "bad name=1", "a;b=c"])
    def test_rejects_malformed_cookies(self, raw):
        with pytest.raises(CookieParseError):
            CookieAttributes.parse(raw)


class TestMutations:
    def test_strip_domain(self):
        cookie = CookieAttributes.parse("sid=1; Domain=origin.example; HttpOnly")
        cookie.strip_domain()

        assert cookie.domain is None
        assert cookie.to_header() == "sid=1; HttpOnly"

    def test_strip_secure_also_drops_samesite_none(self):
        cookie = CookieAttributes.parse("sid=1; Secure; SameSite=None; HttpOnly")
        cookie.strip_secure()

        assert cookie.to_header() == "sid=1; HttpOnly"

    def test_strip_secure_keeps_samesite_lax(self):
        cookie = CookieAttributes.parse("sid=1; Secure; SameSite=Lax")
        cookie.strip_secure()

        assert cookie.to_header() == "sid=1; SameSite=Lax"

    def test_ensure_path_appends_once(self):
        cookie = CookieAttributes.parse("sid=1; HttpOnly")
        cookie.ensure_path()
        cookie.ensure_path()

        assert cookie.to_header() == "sid=1; HttpOnly; Path=/"

    def test_ensure_path_keeps_existing_path(self):
        cookie = CookieAttributes.parse("sid=1; Path=/blog")
        cookie.ensure_path()

        assert cookie.to_header() == "sid=1; Path=/blog"

    def test_unknown_attributes_survive_round_trip(self):
        raw = "sid=1; Partitioned; Priority=High; Path=/"

        assert CookieAttributes.parse(raw).to_header() == raw
