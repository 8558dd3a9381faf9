import pytest

from menuqr.slugs import FALLBACK_SLUG, derive_slug, unique_slug

from conftest import make_user


@pytest.mark.unit
class TestDeriveSlug:

    @pytest.mark.parametrize(
        "name, expected",
        [
            ("Cantina", "cantina"),
            ("Joe's Diner  ", "joes-diner"),
            ("  Hello   World  ", "hello-world"),
            ("Pizza -- Place", "pizza-place"),
            ("Café Açaí & Co.", "cafe-acai-co"),
            ("Bar do Zé 2", "bar-do-ze-2"),
            ("-Leading and trailing-", "leading-and-trailing"),
            ("Tab\tand\nnewline", "tab-and-newline"),
        ],
    )
    def test_derive_slug(self, name, expected):
        assert derive_slug(name) == expected

    def test_unusable_name_gives_empty_slug(self):
        assert derive_slug("!!! ???") == ""
        assert derive_slug("寿司") == ""

    def test_is_deterministic(self):
        assert derive_slug("Padaria São João") == derive_slug("Padaria São João")

    def test_output_alphabet(self):
        slug = derive_slug("Ünïcödé // Straße #1 ---  ok")
        assert slug
        assert set(slug) <= set("abcdefghijklmnopqrstuvwxyz0123456789-")
        assert not slug.startswith("-") and not slug.endswith("-")
        assert "--" not in slug


@pytest.mark.unit
class TestUniqueSlug:

    def test_free_slug_is_used_as_is(self, session):
        assert unique_slug(session, "Cantina") == "cantina"

    def test_collisions_get_numeric_suffix(self, session):
        make_user(session, "a@example.com", "cantina")
        assert unique_slug(session, "Cantina") == "cantina-2"

        make_user(session, "b@example.com", "cantina-2")
        assert unique_slug(session, "Cantina") == "cantina-3"

    def test_own_slug_is_not_a_collision(self, session):
        user = make_user(session, "a@example.com", "cantina")
        assert unique_slug(session, "Cantina", exclude_restaurant_id=user.restaurant.id) == "cantina"

    def test_fallback_for_unusable_name(self, session):
        assert unique_slug(session, "???") == FALLBACK_SLUG
