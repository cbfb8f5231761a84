"""
Test Suite for the Extraction Engine and its Surfaces
=====================================================
Text source dispatch, SQLite results cache, engine orchestration,
CLI commands and HTTP endpoints.
"""

from __future__ import annotations

import io
import json
import sqlite3
from pathlib import Path
from unittest.mock import patch

import fitz
import pytest
from click.testing import CliRunner
from PIL import Image

from award_parser import database as db
from award_parser.cli import cli
from award_parser.engine import ExtractionConfig, ExtractionEngine, result_to_json
from award_parser.models import ExtractionMethod, ExtractionResult, StudentResult
from award_parser.server import app, create_app
from award_parser.text_source import (
    TextExtractionError,
    TextExtractor,
    UnsupportedFileError,
    is_supported,
)

CERTIFICATE_TEXT = (
    "STATEMENT OF RESULTS\n"
    "CANDIDATE NAME: JOHN SMITH\n"
    "UNIQUE CANDIDATE IDENTIFIER: 91234A1234567B\n"
    "DATE OF BIRTH: 01/02/2005\n"
    "AWARD XAC11 MATHEMATICS 85/100 B (b)\n"
    "UNIT 1 WMA11 40/50\n"
)

OTHER_CERTIFICATE_TEXT = (
    "CANDIDATE NAME: CAROL DAVIS\n"
    "UNIQUE CANDIDATE IDENTIFIER: 95678C7654321D\n"
    "DATE OF BIRTH: 3/4/06\n"
    "AWARD YMA01 MATHEMATICS 0368/0600 C (c)\n"
)


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "cache.sqlite")


@pytest.fixture
def cert_file(tmp_path):
    path = tmp_path / "results.txt"
    path.write_text(CERTIFICATE_TEXT, encoding="utf-8")
    return path


@pytest.fixture
def engine(db_path):
    return ExtractionEngine(ExtractionConfig(db_path=db_path, log_level="WARNING"))


def _make_pdf(path: Path, text: str = ""):
    doc = fitz.open()
    page = doc.new_page()
    if text:
        page.insert_text((72, 72), text, fontsize=9)
    doc.save(str(path))
    doc.close()


# ═══════════════════════════════════════════════════════════════════════════════
# TEXT SOURCE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestTextSource:
    """Test text acquisition strategies."""

    def test_supported_extensions(self):
        assert is_supported("a.pdf")
        assert is_supported("scan.JPG")
        assert is_supported("dump.txt")
        assert not is_supported("letter.docx")

    def test_plain_text(self, cert_file):
        extracted = TextExtractor().extract(str(cert_file))
        assert extracted.method == ExtractionMethod.PLAIN
        assert extracted.text == CERTIFICATE_TEXT

    def test_unsupported_extension(self, tmp_path):
        path = tmp_path / "letter.docx"
        path.write_bytes(b"not a certificate")
        with pytest.raises(UnsupportedFileError):
            TextExtractor().extract(str(path))

    def test_pdf_text_layer(self, tmp_path):
        pdf_path = tmp_path / "results.pdf"
        _make_pdf(pdf_path, CERTIFICATE_TEXT)

        extractor = TextExtractor(min_text_length=20, ocr_enabled=False)
        extracted = extractor.extract(str(pdf_path))

        assert extracted.method == ExtractionMethod.TEXT_LAYER
        assert extracted.page_count == 1
        assert "CANDIDATE NAME" in extracted.text
        assert extractor.get_page_count(str(pdf_path)) == 1

    def test_sparse_pdf_falls_back_to_ocr(self, tmp_path):
        pdf_path = tmp_path / "scan.pdf"
        _make_pdf(pdf_path)

        with patch.object(
            TextExtractor, "_ocr_pdf", return_value=(CERTIFICATE_TEXT, 1)
        ) as ocr:
            extracted = TextExtractor().extract(str(pdf_path))

        ocr.assert_called_once()
        assert extracted.method == ExtractionMethod.OCR
        assert extracted.text == CERTIFICATE_TEXT

    def test_ocr_failure_keeps_text_layer(self, tmp_path):
        pdf_path = tmp_path / "scan.pdf"
        _make_pdf(pdf_path)

        with patch.object(
            TextExtractor, "_ocr_pdf", side_effect=RuntimeError("tesseract missing")
        ):
            extracted = TextExtractor().extract(str(pdf_path))

        assert extracted.method == ExtractionMethod.NONE
        assert extracted.text.strip() == ""

    def test_sparse_pdf_without_ocr(self, tmp_path):
        pdf_path = tmp_path / "scan.pdf"
        _make_pdf(pdf_path)

        with patch.object(TextExtractor, "_ocr_pdf") as ocr:
            extracted = TextExtractor(ocr_enabled=False).extract(str(pdf_path))

        ocr.assert_not_called()
        assert extracted.method == ExtractionMethod.NONE

    def test_corrupt_pdf_raises(self, tmp_path):
        pdf_path = tmp_path / "broken.pdf"
        pdf_path.write_bytes(b"this is not a pdf")

        with pytest.raises(TextExtractionError):
            TextExtractor(ocr_enabled=False).extract(str(pdf_path))

    def test_image_ocr(self, tmp_path):
        image_path = tmp_path / "scan.png"
        Image.new("RGB", (40, 20), "white").save(image_path)

        with patch(
            "award_parser.text_source.pytesseract.image_to_string",
            return_value=CERTIFICATE_TEXT,
        ):
            extracted = TextExtractor().extract(str(image_path))

        assert extracted.method == ExtractionMethod.IMAGE_OCR
        assert extracted.text == CERTIFICATE_TEXT


# ═══════════════════════════════════════════════════════════════════════════════
# RESULTS CACHE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestResultsCache:
    """Test the SQLite cache layer."""

    def _result(self, key: str = "results_txt") -> ExtractionResult:
        return ExtractionResult(
            file_name="results.txt",
            file_key=key,
            method=ExtractionMethod.PLAIN,
            text_length=120,
            students=[StudentResult(candidate_name="JOHN SMITH")],
        )

    def test_make_file_key(self):
        assert db.make_file_key("June 2021/RESULTS.pdf") == "June_2021_RESULTS_pdf"
        assert db.make_file_key("a" * 200) == "a" * 120
        assert db.make_file_key("") == "_"

    def test_round_trip(self, db_path):
        db.init_db(db_path)
        db.save_cached_results(self._result(), file_hash="abc", db_path=db_path)

        cached = db.get_cached_results("results_txt", file_hash="abc", db_path=db_path)
        assert cached is not None
        assert cached.cached is True
        assert cached.method == ExtractionMethod.PLAIN
        assert cached.text_length == 120
        assert cached.students[0].candidate_name == "JOHN SMITH"

    def test_miss(self, db_path):
        db.init_db(db_path)
        assert db.get_cached_results("missing", db_path=db_path) is None

    def test_stale_hash_is_a_miss(self, db_path):
        db.init_db(db_path)
        db.save_cached_results(self._result(), file_hash="abc", db_path=db_path)
        assert db.get_cached_results(
            "results_txt", file_hash="def", db_path=db_path
        ) is None

    def test_list_delete_clear(self, db_path):
        db.init_db(db_path)
        db.save_cached_results(self._result("one"), db_path=db_path)
        db.save_cached_results(self._result("two"), db_path=db_path)

        entries = db.list_cached(db_path)
        assert {e["file_key"] for e in entries} == {"one", "two"}
        assert all(e["student_count"] == 1 for e in entries)

        assert db.delete_cached_results("one", db_path) is True
        assert db.delete_cached_results("one", db_path) is False
        assert db.clear_cache(db_path) == 1
        assert db.list_cached(db_path) == []

    def test_init_is_idempotent(self, db_path):
        db.init_db(db_path)
        db.init_db(db_path)


# ═══════════════════════════════════════════════════════════════════════════════
# ENGINE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestExtractionEngine:
    """Test cache-aware orchestration."""

    def test_extract_text_file(self, engine, cert_file):
        result = engine.extract(str(cert_file))

        assert result.file_name == "results.txt"
        assert result.file_key == "results_txt"
        assert result.method == ExtractionMethod.PLAIN
        assert result.cached is False
        assert result.text_length == len(CERTIFICATE_TEXT)
        assert len(result.students) == 1
        student = result.students[0]
        assert student.candidate_name == "JOHN SMITH"
        assert student.uci == "91234A1234567B"
        assert [g.code for g in student.results] == ["XAC11"]

    def test_second_call_is_cached(self, engine, cert_file):
        first = engine.extract(str(cert_file))
        second = engine.extract(str(cert_file))

        assert first.cached is False
        assert second.cached is True
        assert second.students == first.students

    def test_changed_file_is_reparsed(self, engine, cert_file):
        engine.extract(str(cert_file))
        cert_file.write_text(OTHER_CERTIFICATE_TEXT, encoding="utf-8")

        result = engine.extract(str(cert_file))
        assert result.cached is False
        assert result.students[0].candidate_name == "CAROL DAVIS"

    def test_custom_file_key(self, engine, cert_file, db_path):
        engine.extract(str(cert_file), file_key="June 2021/RESULTS.txt")
        assert db.get_cached_results("June_2021_RESULTS_txt", db_path=db_path)

    def test_cache_disabled(self, db_path, cert_file):
        engine = ExtractionEngine(ExtractionConfig(
            use_cache=False, db_path=db_path, log_level="WARNING",
        ))
        assert engine.extract(str(cert_file)).cached is False
        assert engine.extract(str(cert_file)).cached is False
        assert not Path(db_path).exists()

    def test_cache_lookup_failure_is_a_miss(self, engine, cert_file):
        with patch(
            "award_parser.engine.db.get_cached_results",
            side_effect=sqlite3.OperationalError("database is locked"),
        ):
            result = engine.extract(str(cert_file))
        assert result.cached is False
        assert len(result.students) == 1

    def test_cache_write_failure_is_ignored(self, engine, cert_file):
        with patch(
            "award_parser.engine.db.save_cached_results",
            side_effect=sqlite3.OperationalError("disk I/O error"),
        ):
            result = engine.extract(str(cert_file))
        assert len(result.students) == 1

    def test_missing_file(self, engine, tmp_path):
        with pytest.raises(FileNotFoundError):
            engine.extract(str(tmp_path / "missing.pdf"))

    def test_unsupported_file(self, engine, tmp_path):
        path = tmp_path / "letter.docx"
        path.write_bytes(b"data")
        with pytest.raises(UnsupportedFileError):
            engine.extract(str(path))

    def test_extract_text_skips_cache(self, db_path):
        engine = ExtractionEngine(ExtractionConfig(
            db_path=db_path, include_raw_text=False, log_level="WARNING",
        ))
        students = engine.extract_text(CERTIFICATE_TEXT)
        assert students[0].candidate_name == "JOHN SMITH"
        assert students[0].raw_text is None
        assert not Path(db_path).exists()

    def test_result_to_json(self, engine, cert_file):
        data = json.loads(result_to_json(engine.extract(str(cert_file))))
        assert data["fileName"] == "results.txt"
        assert data["method"] == "plain"
        assert data["studentCount"] == 1
        assert data["students"][0]["candidateName"] == "JOHN SMITH"


# ═══════════════════════════════════════════════════════════════════════════════
# CLI TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestCli:
    """Test click commands."""

    def test_extract_json_output(self, cert_file, db_path):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "extract", str(cert_file), "--json-output", "--db-path", db_path,
        ])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["students"][0]["candidateName"] == "JOHN SMITH"
        assert data["students"][0]["results"][0]["grade"] == "B"

    def test_extract_table_output(self, cert_file, db_path):
        runner = CliRunner()
        result = runner.invoke(cli, [
            "extract", str(cert_file), "--db-path", db_path, "--log-level", "ERROR",
        ])
        assert result.exit_code == 0, result.output
        assert "JOHN SMITH" in result.output
        assert "XAC11" in result.output

    def test_extract_missing_path(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["extract", str(tmp_path / "missing.pdf")])
        assert result.exit_code == 2

    def test_extract_unsupported_file(self, tmp_path, db_path):
        path = tmp_path / "letter.docx"
        path.write_bytes(b"data")
        runner = CliRunner()
        result = runner.invoke(cli, [
            "extract", str(path), "--db-path", db_path, "--log-level", "ERROR",
        ])
        assert result.exit_code == 1

    def test_batch(self, tmp_path, db_path):
        folder = tmp_path / "certs"
        folder.mkdir()
        (folder / "a.txt").write_text(CERTIFICATE_TEXT, encoding="utf-8")
        (folder / "b.txt").write_text(OTHER_CERTIFICATE_TEXT, encoding="utf-8")
        (folder / "notes.docx").write_bytes(b"ignored")
        out_file = tmp_path / "out" / "all.json"

        runner = CliRunner()
        result = runner.invoke(cli, [
            "batch", str(folder), "--db-path", db_path,
            "--parallel", "2", "--output", str(out_file),
        ])
        assert result.exit_code == 0, result.output
        assert "Batch Processing Summary" in result.output

        payload = json.loads(out_file.read_text(encoding="utf-8"))
        assert [r["fileName"] for r in payload] == ["a.txt", "b.txt"]
        assert payload[1]["students"][0]["candidateName"] == "CAROL DAVIS"

    def test_batch_empty_directory(self, tmp_path):
        runner = CliRunner()
        result = runner.invoke(cli, ["batch", str(tmp_path)])
        assert result.exit_code == 0
        assert "No supported files" in result.output

    def test_inspect(self, cert_file):
        runner = CliRunner()
        result = runner.invoke(cli, ["inspect", str(cert_file)])
        assert result.exit_code == 0, result.output
        assert "Chunk 1" in result.output

    def test_cache_commands(self, cert_file, db_path):
        runner = CliRunner()
        runner.invoke(cli, [
            "extract", str(cert_file), "--json-output", "--db-path", db_path,
        ])

        listed = runner.invoke(cli, ["cache", "list", "--db-path", db_path])
        assert listed.exit_code == 0
        assert "Cached Extractions" in listed.output

        deleted = runner.invoke(cli, [
            "cache", "delete", "missing_key", "--db-path", db_path,
        ])
        assert deleted.exit_code == 1

        cleared = runner.invoke(cli, ["cache", "clear", "--yes", "--db-path", db_path])
        assert cleared.exit_code == 0
        assert "Removed 1 cache entries" in cleared.output


# ═══════════════════════════════════════════════════════════════════════════════
# HTTP SERVICE TESTS
# ═══════════════════════════════════════════════════════════════════════════════


class TestServer:
    """Test Flask endpoints."""

    @pytest.fixture
    def client(self, tmp_path, db_path):
        create_app({
            "TESTING": True,
            "UPLOAD_DIR": str(tmp_path / "uploads"),
            "DB_PATH": db_path,
            "USE_CACHE": True,
            "OCR_ENABLED": False,
            "LOG_LEVEL": "WARNING",
        })
        return app.test_client()

    def test_health(self, client):
        response = client.get("/api/health")
        assert response.status_code == 200
        assert response.get_json()["status"] == "healthy"

    def test_info(self, client):
        data = client.get("/api/info").get_json()
        assert "pdf" in data["supported_formats"]

    def test_parse_text(self, client):
        response = client.post("/api/parse-text", json={"text": CERTIFICATE_TEXT})
        assert response.status_code == 200
        students = response.get_json()["students"]
        assert students[0]["candidateName"] == "JOHN SMITH"
        assert students[0]["results"][0]["code"] == "XAC11"

    def test_parse_text_requires_text(self, client):
        response = client.post("/api/parse-text", json={})
        assert response.status_code == 400

    def test_extract_upload(self, client):
        response = client.post(
            "/api/extract",
            data={"file": (io.BytesIO(CERTIFICATE_TEXT.encode()), "results.txt")},
            content_type="multipart/form-data",
        )
        assert response.status_code == 200
        data = response.get_json()
        assert data["success"] is True
        assert data["method"] == "plain"
        assert data["students"][0]["uci"] == "91234A1234567B"

    def test_extract_upload_unsupported(self, client):
        response = client.post(
            "/api/extract",
            data={"file": (io.BytesIO(b"data"), "letter.docx")},
            content_type="multipart/form-data",
        )
        assert response.status_code == 415

    def test_extract_stored_file_uses_cache(self, client, tmp_path):
        stored = tmp_path / "uploads" / "June 2021"
        stored.mkdir(parents=True)
        (stored / "RESULTS.txt").write_text(CERTIFICATE_TEXT, encoding="utf-8")

        first = client.post("/api/extract", json={"filePath": "June 2021/RESULTS.txt"})
        second = client.post("/api/extract", json={"filePath": "June 2021/RESULTS.txt"})

        assert first.status_code == 200
        assert first.get_json()["cached"] is False
        assert second.get_json()["cached"] is True
        assert second.get_json()["students"] == first.get_json()["students"]

    @pytest.mark.parametrize("file_path", ["missing.txt", "../outside.txt"])
    def test_extract_stored_file_not_found(self, client, tmp_path, file_path):
        (tmp_path / "outside.txt").write_text(CERTIFICATE_TEXT, encoding="utf-8")
        response = client.post("/api/extract", json={"filePath": file_path})
        assert response.status_code == 404

    def test_extract_requires_input(self, client):
        assert client.post("/api/extract").status_code == 400
        assert client.post("/api/extract", json={}).status_code == 400

    def test_extract_failure_reports_details(self, client, tmp_path):
        with patch(
            "award_parser.engine.TextExtractor.extract",
            side_effect=TextExtractionError("cannot read"),
        ):
            response = client.post(
                "/api/extract",
                data={"file": (io.BytesIO(b"%PDF-"), "scan.pdf")},
                content_type="multipart/form-data",
            )
        assert response.status_code == 500
        assert response.get_json()["details"] == "cannot read"
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_uploads_are_removed_after_extraction(self, client, tmp_path):
        for _ in range(3):
            response = client.post(
                "/api/extract",
                data={"file": (io.BytesIO(CERTIFICATE_TEXT.encode()), "r.txt")},
                content_type="multipart/form-data",
            )
            assert response.status_code == 200
        assert list((tmp_path / "uploads").iterdir()) == []

    def test_stored_file_is_kept(self, client, tmp_path):
        stored = tmp_path / "uploads" / "RESULTS.txt"
        stored.write_text(CERTIFICATE_TEXT, encoding="utf-8")

        response = client.post("/api/extract", json={"filePath": "RESULTS.txt"})
        assert response.status_code == 200
        assert stored.exists()

    def test_cached_upload_reports_caller_file_name(self, client):
        responses = [
            client.post(
                "/api/extract",
                data={"file": (io.BytesIO(CERTIFICATE_TEXT.encode()), "results.txt")},
                content_type="multipart/form-data",
            ).get_json()
            for _ in range(2)
        ]
        assert responses[1]["cached"] is True
        assert [r["fileName"] for r in responses] == ["results.txt", "results.txt"]

    def test_upload_size_limit(self, client):
        assert app.config["MAX_CONTENT_LENGTH"] == 10 * 1024 * 1024

        oversized = b"A" * (10 * 1024 * 1024 + 1)
        response = client.post(
            "/api/extract",
            data={"file": (io.BytesIO(oversized), "huge.txt")},
            content_type="multipart/form-data",
        )
        assert response.status_code == 413
