from abc import ABC, abstractmethod
from typing import Any, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from quest_core.core.exceptions import AppError
from quest_core.utils.logging import get_logger

LOGGER = get_logger(__name__)


class BaseService(ABC):
    """Base class for application services.

    Provides a standardized execution flow with validation and error
    handling. Services own the transaction: ``execute`` commits the session
    when ``run`` succeeds and rolls it back on any failure.
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        self.session = session
        self.logger = LOGGER

    async def execute(self, *args, **kwargs) -> Any:
        """Validate, run and commit.

        Raises:
            AppError: If execution fails
        """
        try:
            self.validate(*args, **kwargs)

            result = await self.run(*args, **kwargs)

            if self.session is not None:
                await self.session.commit()
            return result

        except AppError:
            await self._rollback()
            raise

        except Exception as e:
            await self._rollback()
            self.logger.error(
                f"Service execution failed: {str(e)}",
                exc_info=True,
                extra={"service": self.__class__.__name__},
            )
            raise AppError(f"Service execution failed: {str(e)}", original_error=e)

    async def _rollback(self) -> None:
        if self.session is not None:
            await self.session.rollback()

    def validate(self, *args, **kwargs):
        """Validate service input.

        Raises:
            ValidationError: If input is invalid
        """
        pass

    @abstractmethod
    async def run(self, *args, **kwargs) -> Any:
        pass
