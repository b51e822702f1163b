import unittest

from capture_index.cdx import format_line, parse_line, parse_lines
from capture_index.exceptions import CdxFormatError

LINE = "org,example)/ 20060101120000 http://example.org/ text/html 200 SHA1ABC - EX-2006.arc.gz 1234"


class TestCdxCodec(unittest.TestCase):
    def test_parse_line_fields(self):
        rec = parse_line(LINE + "\n")
        self.assertEqual(rec.url_key, "org,example)/")
        self.assertEqual(rec.capture_timestamp, "20060101120000")
        self.assertEqual(rec.original_url, "http://example.org/")
        self.assertEqual(rec.mime_type, "text/html")
        self.assertEqual(rec.http_status_code, "200")
        self.assertEqual(rec.digest, "SHA1ABC")
        self.assertEqual(rec.redirect_url, "-")
        self.assertEqual(rec.file_name, "EX-2006.arc.gz")
        self.assertEqual(rec.file_offset, 1234)
        self.assertEqual(format_line(rec), LINE)

    def test_wrong_field_count(self):
        with self.assertRaises(CdxFormatError):
            parse_line("org,example)/ 20060101120000 http://example.org/")

    def test_bad_timestamp(self):
        with self.assertRaises(CdxFormatError):
            parse_line(LINE.replace("20060101120000", "2006"))

    def test_bad_offset(self):
        with self.assertRaises(CdxFormatError):
            parse_line(LINE.replace(" 1234", " twelve"))
        with self.assertRaises(CdxFormatError):
            parse_line(LINE.replace(" 1234", " -5"))

    def test_parse_lines_skips_header_and_blanks(self):
        lines = [" CDX N b a m s k r g V\n", "\n", LINE + "\n", "   \n"]
        recs = list(parse_lines(lines))
        self.assertEqual(len(recs), 1)
        self.assertEqual(recs[0].file_offset, 1234)


if __name__ == "__main__":
    unittest.main()
