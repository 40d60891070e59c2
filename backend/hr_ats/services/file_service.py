"""
简历文件服务
仅负责文本提取，不保存文件。提取失败不会抛出异常，而是返回带标记的文本，
让分析流程对这类简历直接给出 0 分。
"""

import os
import shutil
import logging
import tempfile
from typing import List, Optional, Tuple

from docx import Document as DocxDocument
from fastapi import UploadFile
from langchain_community.document_loaders import PyPDFLoader
from langchain_core.documents import Document

from hr_ats.core.config import (
    EXTRACTION_FAILED_MARKER,
    MAX_UPLOAD_SIZE_MB,
    PROCESSING_ERROR_MARKER,
    UNKNOWN_CANDIDATE_NAME,
)

logger = logging.getLogger(__name__)

# 少于该长度视为提取失败（扫描件等）
MIN_EXTRACTED_LENGTH = 10


class FileServiceError(Exception):
    """文件服务基础异常类"""
    pass


class UnsupportedFileTypeError(FileServiceError):
    """不支持的文件类型异常"""
    pass


class FileSizeExceededError(FileServiceError):
    """文件大小超限异常"""
    pass


def name_from_filename(filename: Optional[str]) -> Optional[str]:
    """从文件名推断姓名：去掉扩展名，下划线/连字符替换为空格"""
    if not filename:
        return None
    stem = os.path.splitext(os.path.basename(filename))[0]
    name = " ".join(stem.replace("_", " ").replace("-", " ").split())
    return name or None


def guess_candidate_name(text: str, filename: Optional[str], extraction_ok: bool) -> str:
    """姓名：简历第一行非空文本 -> 文件名 -> 占位符"""
    if extraction_ok:
        for line in text.splitlines():
            if line.strip():
                return line.strip()
    return name_from_filename(filename) or UNKNOWN_CANDIDATE_NAME


class FileService:
    """
    简历文本提取服务

    支持的文件格式：
    - PDF (.pdf)
    - Word (.docx)
    - 纯文本 (.txt)
    """

    def __init__(self, max_file_size_mb: int = MAX_UPLOAD_SIZE_MB):
        self.max_file_size_bytes = max_file_size_mb * 1024 * 1024
        self.allowed_extensions = ['pdf', 'docx', 'txt']
        logger.info(f"文件服务初始化成功，最大文件大小: {max_file_size_mb}MB")

    def _validate_file_type(self, filename: str) -> bool:
        file_ext = os.path.splitext(filename or "")[1].lower().lstrip('.')
        return file_ext in self.allowed_extensions

    def _validate_file_size(self, file_size: int) -> bool:
        return file_size <= self.max_file_size_bytes

    def extract_text_from_pdf(self, file_path: str) -> str:
        loader = PyPDFLoader(file_path)
        pages: List[Document] = loader.load()
        return "\n\n".join(page.page_content for page in pages)

    def extract_text_from_docx(self, file_path: str) -> str:
        doc = DocxDocument(file_path)
        return "\n\n".join(p.text for p in doc.paragraphs if p.text.strip())

    def extract_text_from_txt(self, file_path: str) -> str:
        for encoding in ['utf-8', 'gbk', 'gb2312', 'latin-1']:
            try:
                with open(file_path, 'r', encoding=encoding) as f:
                    return f.read()
            except UnicodeDecodeError:
                continue
        raise ValueError("无法使用常见编码读取文本文件")

    def extract_text(self, file_path: str) -> str:
        """根据文件类型自动选择提取方法"""
        file_ext = os.path.splitext(file_path)[1].lower()

        if file_ext == '.pdf':
            return self.extract_text_from_pdf(file_path)
        elif file_ext == '.docx':
            return self.extract_text_from_docx(file_path)
        elif file_ext == '.txt':
            return self.extract_text_from_txt(file_path)
        else:
            raise UnsupportedFileTypeError(f"不支持的文件类型: {file_ext}")

    def extract_cv_text(self, file_path: str, original_name: str) -> Tuple[str, str]:
        """
        提取简历文本并推断候选人姓名

        Returns:
            (文本, 姓名)。提取失败时文本为 "[PDF extraction failed] ..." 或
            "[PDF processing error] ..." 标记
        """
        try:
            text = (self.extract_text(file_path) or "").strip()
        except UnsupportedFileTypeError:
            raise
        except Exception as e:
            logger.error(f"[FileService] 提取 {original_name} 文本出错: {e}")
            text = f"{PROCESSING_ERROR_MARKER} File: {original_name} - Error: {e}"
            return text, guess_candidate_name(text, original_name, extraction_ok=False)

        if len(text) < MIN_EXTRACTED_LENGTH:
            logger.warning(f"[FileService] {original_name} 文本提取失败或内容过少")
            text = f"{EXTRACTION_FAILED_MARKER} File: {original_name}"
            return text, guess_candidate_name(text, original_name, extraction_ok=False)

        logger.info(f"[FileService] 成功从 {original_name} 提取 {len(text)} 个字符")
        return text, guess_candidate_name(text, original_name, extraction_ok=True)

    async def process_fastapi_file(self, upload_file: UploadFile) -> Tuple[str, str]:
        """
        处理 FastAPI 上传的简历，仅提取文本内容，不保存文件

        Returns:
            (文本, 姓名)

        Raises:
            UnsupportedFileTypeError: 文件类型不支持
            FileSizeExceededError: 文件过大
        """
        filename = upload_file.filename or ""

        if not self._validate_file_type(filename):
            raise UnsupportedFileTypeError(
                f"不支持的文件类型: {filename}。"
                f"支持的格式: {', '.join(self.allowed_extensions)}"
            )

        file_size = upload_file.size
        if file_size is None:
            upload_file.file.seek(0, 2)
            file_size = upload_file.file.tell()
            upload_file.file.seek(0)

        if not self._validate_file_size(file_size):
            raise FileSizeExceededError(
                f"文件大小 ({file_size / 1024 / 1024:.2f}MB) "
                f"超过限制 ({self.max_file_size_bytes / 1024 / 1024}MB)"
            )

        file_ext = os.path.splitext(filename)[1]
        with tempfile.NamedTemporaryFile(delete=False, suffix=file_ext) as temp_file:
            temp_path = temp_file.name
            shutil.copyfileobj(upload_file.file, temp_file)

        try:
            return self.extract_cv_text(temp_path, filename)
        finally:
            try:
                os.remove(temp_path)
            except OSError as e:
                logger.warning(f"删除临时文件失败: {e}")
