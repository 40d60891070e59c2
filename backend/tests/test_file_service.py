"""简历文本提取测试"""

import io

import pytest
from fastapi import UploadFile

from hr_ats.core.config import UNKNOWN_CANDIDATE_NAME
from hr_ats.services.file_service import (
    FileService,
    FileSizeExceededError,
    UnsupportedFileTypeError,
    guess_candidate_name,
    name_from_filename,
)

RESUME = "王小明\n邮箱: wang@example.com\n五年 Python 开发经验，熟悉分布式系统。"


class TestNameGuessing:

    def test_first_non_empty_line(self):
        assert guess_candidate_name("\n\n  王小明  \n其他", "cv.pdf", extraction_ok=True) == "王小明"

    def test_filename_when_extraction_failed(self):
        assert guess_candidate_name("[PDF extraction failed]", "Jean_Dupont-CV.pdf", extraction_ok=False) == "Jean Dupont CV"

    def test_placeholder_as_last_resort(self):
        assert guess_candidate_name("", None, extraction_ok=False) == UNKNOWN_CANDIDATE_NAME

    def test_name_from_filename_strips_directories(self):
        assert name_from_filename("/tmp/uploads/li_lei.docx") == "li lei"


class TestExtractCvText:
    """无法读取的文档返回标记文本，不抛异常"""

    def test_text_file(self, tmp_path):
        path = tmp_path / "resume.txt"
        path.write_text(RESUME, encoding="utf-8")

        text, name = FileService().extract_cv_text(str(path), "resume.txt")

        assert text == RESUME
        assert name == "王小明"

    def test_gbk_text_file(self, tmp_path):
        path = tmp_path / "resume.txt"
        path.write_bytes(RESUME.encode("gbk"))

        text, _ = FileService().extract_cv_text(str(path), "resume.txt")

        assert "王小明" in text

    def test_almost_empty_document_marked_as_failed(self, tmp_path):
        path = tmp_path / "scan.txt"
        path.write_text("   ", encoding="utf-8")

        text, name = FileService().extract_cv_text(str(path), "zhang_san.txt")

        assert text == "[PDF extraction failed] File: zhang_san.txt"
        assert name == "zhang san"

    def test_parser_error_marked_as_processing_error(self, tmp_path, monkeypatch):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"not really a pdf")
        service = FileService()

        def broken_parser(file_path):
            raise ValueError("EOF marker not found")

        monkeypatch.setattr(service, "extract_text_from_pdf", broken_parser)

        text, name = service.extract_cv_text(str(path), "broken.pdf")

        assert text == "[PDF processing error] File: broken.pdf - Error: EOF marker not found"
        assert name == "broken"

    def test_unsupported_type_raises(self, tmp_path):
        path = tmp_path / "photo.png"
        path.write_bytes(b"\x89PNG")

        with pytest.raises(UnsupportedFileTypeError):
            FileService().extract_cv_text(str(path), "photo.png")


class TestUploadValidation:

    @pytest.mark.asyncio
    async def test_upload_extracts_text(self):
        data = RESUME.encode("utf-8")
        upload = UploadFile(file=io.BytesIO(data), filename="wang.txt", size=len(data))

        text, name = await FileService().process_fastapi_file(upload)

        assert text == RESUME
        assert name == "王小明"

    @pytest.mark.asyncio
    async def test_rejects_unsupported_extension(self):
        upload = UploadFile(file=io.BytesIO(b"data"), filename="cv.exe")

        with pytest.raises(UnsupportedFileTypeError):
            await FileService().process_fastapi_file(upload)

    @pytest.mark.asyncio
    async def test_rejects_large_file(self):
        data = b"x" * 2048
        upload = UploadFile(file=io.BytesIO(data), filename="cv.txt")
        service = FileService()
        service.max_file_size_bytes = 1024

        with pytest.raises(FileSizeExceededError):
            await service.process_fastapi_file(upload)
