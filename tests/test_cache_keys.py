import hashlib
import unittest

from pyapiq.utils.cache_keys import KEY_LENGTH, derive_cache_key


class TestDeriveCacheKey(unittest.TestCase):

    def test_key_is_short_lowercase_hex(self):
        key = derive_cache_key("https://registry.npmjs.org/react")
        self.assertEqual(len(key), KEY_LENGTH)
        self.assertRegex(key, r"^[0-9a-f]{16}$")

    def test_key_matches_sha256_prefix(self):
        """The hash input is the identifier, a '?', then sorted k=v pairs."""
        expected = hashlib.sha256(b"https://example.com/api?a=1&b=x").hexdigest()[:16]
        self.assertEqual(derive_cache_key("https://example.com/api", {"b": "x", "a": 1}), expected)

    def test_no_params_still_appends_separator(self):
        expected = hashlib.sha256(b"pkg?").hexdigest()[:16]
        self.assertEqual(derive_cache_key("pkg"), expected)
        self.assertEqual(derive_cache_key("pkg", {}), expected)

    def test_param_order_does_not_matter(self):
        first = derive_cache_key("url", {"size": 20, "text": "react", "from": 0})
        second = derive_cache_key("url", {"from": 0, "text": "react", "size": 20})
        self.assertEqual(first, second)

    def test_different_inputs_give_different_keys(self):
        self.assertNotEqual(derive_cache_key("url", {"size": 20}), derive_cache_key("url", {"size": 21}))
        self.assertNotEqual(derive_cache_key("url-a"), derive_cache_key("url-b"))

    def test_value_formatting(self):
        """Booleans render lowercase and integral floats render as ints."""
        self.assertEqual(derive_cache_key("u", {"flag": True}), derive_cache_key("u", {"flag": "true"}))
        self.assertEqual(derive_cache_key("u", {"n": 2.0}), derive_cache_key("u", {"n": 2}))
        self.assertNotEqual(derive_cache_key("u", {"n": 2.5}), derive_cache_key("u", {"n": 2}))

    def test_deterministic(self):
        self.assertEqual(derive_cache_key("x", {"a": "b"}), derive_cache_key("x", {"a": "b"}))


if __name__ == '__main__':
    unittest.main()
