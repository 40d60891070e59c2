"""
HR ATS 后端 - 简历分析流水线
"""

__version__ = "1.0.0"
