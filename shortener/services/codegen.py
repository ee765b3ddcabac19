import logging

from ..errors import AliasExistsError, GenerationExhaustedError, InvalidAliasFormatError
from ..interfaces import URLStore
from ..observability import CODE_COLLISIONS
from ..utils import ALPHABET, generate_random_code, is_valid_alias

logger = logging.getLogger(__name__)

class CodeGenerator:
    """Hands out short codes that are free at the time of the check.

    The existence check only saves wasted inserts; the store's unique index is
    what actually settles races between concurrent generators.
    """

    def __init__(self, store: URLStore, length: int = 6, max_attempts: int = 10, alphabet: str = ALPHABET):
        self.store = store
        self.length = length
        self.max_attempts = max_attempts
        self.alphabet = alphabet

    async def generate_custom(self, alias: str) -> str:
        if not is_valid_alias(alias):
            raise InvalidAliasFormatError()
        if await self.store.exists_by_code(alias):
            raise AliasExistsError()
        return alias

    async def generate_random(self) -> str:
        for attempt in range(1, self.max_attempts + 1):
            code = generate_random_code(self.length, self.alphabet)
            if not await self.store.exists_by_code(code):
                return code
            CODE_COLLISIONS.inc()
            logger.info(f"Short code collision on attempt {attempt}/{self.max_attempts}")

        logger.error(f"Gave up generating a short code after {self.max_attempts} attempts")
        raise GenerationExhaustedError()
