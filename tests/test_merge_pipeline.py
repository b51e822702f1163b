import tempfile
import time
import unittest
from pathlib import Path

from capture_index.exceptions import CdxFormatError, ConfigurationFault, NoResults
from capture_index.merge_pipeline import MergePipeline, read_batch
from capture_index.models import SearchQuery
from capture_index.persistent_index import PersistentIndex

GOOD = (
    "com,example)/ 20060101000000 http://example.com/ text/html 200 D1 - A.arc.gz 10\n"
    "com,example)/ 20070101000000 http://example.com/ text/html 200 D2 - A.arc.gz 20\n"
    "com,example)/page 20060101000000 http://example.com/page text/html 404 D3 - A.arc.gz 30\n"
)

BAD = (
    "com,broken)/ 20060101000000 http://broken.com/ text/html 200 D1 - A.arc.gz 10\n"
    "com,broken)/ not-a-line\n"
)

UNSORTED = (
    "com,zzz)/ 20060101000000 http://zzz.com/ text/html 200 D1 - A.arc.gz 10\n"
    "com,aaa)/ 20060101000000 http://aaa.com/ text/html 200 D1 - A.arc.gz 20\n"
)


class TestMergePipeline(unittest.TestCase):
    def setUp(self):
        self._td = tempfile.TemporaryDirectory()
        self.root = Path(self._td.name)
        self.index = PersistentIndex(self.root / "index", "DB1")
        self.incoming = self.root / "incoming"
        self.merged = self.root / "merged"
        self.failed = self.root / "failed"

    def tearDown(self):
        self._td.cleanup()

    def _pipeline(self, **kwargs):
        kwargs.setdefault("merged_dir", self.merged)
        kwargs.setdefault("failed_dir", self.failed)
        return MergePipeline(self.index, self.incoming, **kwargs)

    def _drop(self, name, body):
        path = self.incoming / name
        path.write_text(body, encoding="utf-8")
        return path

    def test_directories_created_eagerly(self):
        self._pipeline()
        self.assertTrue(self.incoming.is_dir())
        self.assertTrue(self.merged.is_dir())
        self.assertTrue(self.failed.is_dir())

    def test_directory_that_is_a_file_is_fatal(self):
        self.merged.write_text("not a dir", encoding="utf-8")
        with self.assertRaises(ConfigurationFault):
            self._pipeline()

    def test_empty_incoming_is_a_noop(self):
        stats = self._pipeline().run_cycle()
        self.assertEqual(stats.scanned, 0)

    def test_good_file_is_merged_and_queryable(self):
        pipeline = self._pipeline()
        self._drop("batch-001.cdx", GOOD)

        stats = pipeline.run_cycle()

        self.assertEqual((stats.merged, stats.failed, stats.records), (1, 0, 3))
        self.assertFalse((self.incoming / "batch-001.cdx").exists())
        self.assertTrue((self.merged / "batch-001.cdx").exists())
        rs = self.index.lookup(SearchQuery(url="com,example)/", prefix=True, page_size=10))
        self.assertEqual([r.file_offset for r in rs], [10, 20, 30])

    def test_bad_file_goes_to_failed_and_is_never_visible(self):
        pipeline = self._pipeline()
        self._drop("batch-002.cdx", BAD)

        stats = pipeline.run_cycle()

        self.assertEqual((stats.merged, stats.failed), (0, 1))
        self.assertTrue((self.failed / "batch-002.cdx").exists())
        self.assertEqual(list(self.incoming.iterdir()), [])
        with self.assertRaises(NoResults):
            self.index.lookup(SearchQuery(url="com,broken)/", page_size=10))

    def test_unsorted_file_fails_whole(self):
        pipeline = self._pipeline()
        self._drop("batch-003.cdx", UNSORTED)
        stats = pipeline.run_cycle()
        self.assertEqual(stats.failed, 1)
        self.assertEqual(self.index.count(), 0)

    def test_no_merged_dir_deletes_after_success(self):
        pipeline = self._pipeline(merged_dir=None)
        self._drop("batch.cdx", GOOD)
        pipeline.run_cycle()
        self.assertEqual(list(self.incoming.iterdir()), [])
        self.assertEqual(self.index.count(), 3)

    def test_no_failed_dir_leaves_file_and_retries(self):
        pipeline = self._pipeline(failed_dir=None)
        self._drop("bad.cdx", BAD)

        self.assertEqual(pipeline.run_cycle().failed, 1)
        self.assertTrue((self.incoming / "bad.cdx").exists())
        self.assertEqual(pipeline.run_cycle().failed, 1)

    def test_retry_limit_stops_reattempts(self):
        pipeline = self._pipeline(failed_dir=None, retry_limit=2)
        self._drop("bad.cdx", BAD)

        self.assertEqual(pipeline.run_cycle().failed, 1)
        self.assertEqual(pipeline.run_cycle().failed, 1)
        stats = pipeline.run_cycle()
        self.assertEqual((stats.failed, stats.skipped), (0, 1))

    def test_replaced_file_is_retried_after_limit(self):
        pipeline = self._pipeline(failed_dir=None, retry_limit=1)
        self._drop("batch.cdx", BAD)
        pipeline.run_cycle()
        self.assertEqual(pipeline.run_cycle().skipped, 1)

        self._drop("batch.cdx", GOOD)
        stats = pipeline.run_cycle()
        self.assertEqual(stats.merged, 1)

    def test_committed_file_seen_again_is_only_relocated(self):
        pipeline = self._pipeline()
        self._drop("first.cdx", GOOD)
        pipeline.run_cycle()

        # simulate a crash between commit and relocation
        self._drop("again.cdx", GOOD)
        stats = pipeline.run_cycle()

        self.assertEqual((stats.merged, stats.skipped), (0, 1))
        self.assertTrue((self.merged / "again.cdx").exists())
        self.assertEqual(self.index.count(), 3)

    def test_name_clash_in_merged_dir(self):
        pipeline = self._pipeline()
        self.merged.mkdir(parents=True, exist_ok=True)
        (self.merged / "batch.cdx").write_text("older", encoding="utf-8")
        self._drop("batch.cdx", GOOD)
        pipeline.run_cycle()
        self.assertTrue((self.merged / "batch.cdx.1").exists())
        self.assertEqual((self.merged / "batch.cdx").read_text(encoding="utf-8"), "older")

    def test_hidden_files_are_ignored(self):
        pipeline = self._pipeline()
        self._drop(".partial.cdx.tmp", GOOD)
        self.assertEqual(pipeline.run_cycle().scanned, 0)

    def test_scheduled_cycles(self):
        pipeline = self._pipeline(interval_seconds=0.1)
        pipeline.start()
        try:
            self.assertTrue(pipeline.running)
            self._drop("batch.cdx", GOOD)
            deadline = time.monotonic() + 10
            while time.monotonic() < deadline and not (self.merged / "batch.cdx").exists():
                time.sleep(0.05)
        finally:
            pipeline.shutdown()
        self.assertFalse(pipeline.running)
        self.assertTrue((self.merged / "batch.cdx").exists())
        self.assertEqual(self.index.count(), 3)

    def test_read_batch_reports_file_name(self):
        self.incoming.mkdir(parents=True)
        path = self._drop("broken.cdx", BAD)
        with self.assertRaises(CdxFormatError) as ctx:
            read_batch(path)
        self.assertIn("broken.cdx", str(ctx.exception))


if __name__ == "__main__":
    unittest.main()
