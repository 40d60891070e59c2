"""
API 依赖注入
"""

from fastapi import Request

from hr_ats.core.container import AppContainer


def get_container(request: Request) -> AppContainer:
    """从应用状态中取出组合根"""
    return request.app.state.container
