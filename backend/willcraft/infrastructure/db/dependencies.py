"""
Dependency Injection Providers for Willcraft

FastAPI dependencies for repositories. Tests replace them through
``app.dependency_overrides``.
"""

from typing import Annotated

from fastapi import Depends

from willcraft.infrastructure.db.repositories import UserRepository, get_user_repository


# Type alias for the repository the identity resolver and account routes share
UserRepoDep = Annotated[UserRepository, Depends(get_user_repository)]
