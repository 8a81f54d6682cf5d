import io
import json
import tempfile
import unittest
from contextlib import redirect_stdout
from pathlib import Path
from unittest.mock import patch

from trail_import.cli import main
from trail_import.samples import SAMPLE_JSON, SAMPLE_MD


class TestCli(unittest.TestCase):
    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()

    def tearDown(self):
        self.temp_dir.cleanup()

    def _run(self, argv):
        buffer = io.StringIO()
        with patch.dict("os.environ", {}, clear=True), redirect_stdout(buffer):
            main(argv)
        return buffer.getvalue()

    def test_sample_is_printed(self):
        output = self._run(["--sample", "json"])

        self.assertEqual(json.loads(output), SAMPLE_JSON)

    def test_file_import_prints_result(self):
        path = Path(self.temp_dir.name) / "course.md"
        path.write_text(SAMPLE_MD, encoding="utf-8")

        output = self._run([str(path)])

        payload = json.loads(output.split("\nWarnings:")[0])
        self.assertTrue(payload["success"])
        self.assertEqual(payload["detectedFormat"], "md")
        self.assertEqual(payload["parseMethod"], "code")
        self.assertEqual(payload["trails"][0]["title"], "Vibe Coding")

    def test_missing_file_argument(self):
        with self.assertRaises(SystemExit):
            with redirect_stdout(io.StringIO()), patch("sys.stderr", io.StringIO()):
                main([])


if __name__ == "__main__":
    unittest.main()
