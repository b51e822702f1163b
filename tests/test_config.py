import os
import unittest
from unittest.mock import patch

from capture_index.config import SOURCE_FLATFILE, SOURCE_PERSISTENT, load_settings
from capture_index.exceptions import ConfigurationFault


def clean_env(**values):
    env = {k: v for k, v in os.environ.items() if not k.startswith("CAPIDX_")}
    env.update(values)
    return patch.dict(os.environ, env, clear=True)


class TestLoadSettings(unittest.TestCase):
    def test_defaults(self):
        with clean_env():
            s = load_settings()
        self.assertEqual(s.source, SOURCE_PERSISTENT)
        self.assertEqual(s.db_name, "DB1")
        self.assertEqual(s.max_records, 1000)
        self.assertEqual(s.merge_interval_sec, 10.0)
        self.assertIsNone(s.retry_limit)
        self.assertFalse(s.allow_prefix)

    def test_flatfile_paths_split(self):
        with clean_env(CAPIDX_SOURCE="FlatFile", CAPIDX_CDX_PATHS=" a.cdx, b.cdx ,,"):
            s = load_settings()
        self.assertEqual(s.source, SOURCE_FLATFILE)
        self.assertEqual(s.cdx_paths, ("a.cdx", "b.cdx"))

    def test_numbers_and_flags(self):
        with clean_env(
            CAPIDX_MAX_RECORDS="50",
            CAPIDX_RETRY_LIMIT="3",
            CAPIDX_MERGE_INTERVAL_SEC="2.5",
            CAPIDX_ALLOW_PREFIX="yes",
        ):
            s = load_settings()
        self.assertEqual((s.max_records, s.retry_limit, s.merge_interval_sec), (50, 3, 2.5))
        self.assertTrue(s.allow_prefix)

    def test_unknown_source(self):
        with clean_env(CAPIDX_SOURCE="bdb"):
            with self.assertRaises(ConfigurationFault):
                load_settings()

    def test_max_records_below_one(self):
        for value in ("0", "-5"):
            with self.subTest(value):
                with clean_env(CAPIDX_MAX_RECORDS=value):
                    with self.assertRaises(ConfigurationFault):
                        load_settings()

    def test_retry_limit_below_one(self):
        with clean_env(CAPIDX_RETRY_LIMIT="0"):
            with self.assertRaises(ConfigurationFault):
                load_settings()

    def test_non_positive_interval(self):
        with clean_env(CAPIDX_MERGE_INTERVAL_SEC="0"):
            with self.assertRaises(ConfigurationFault):
                load_settings()

    def test_bad_number(self):
        with clean_env(CAPIDX_MAX_RECORDS="lots"):
            with self.assertRaises(ConfigurationFault):
                load_settings()


if __name__ == "__main__":
    unittest.main()
