from functools import lru_cache

from dinamai.generation import GenerationDeps, build_generation_deps, handle_generation
from dinamai.http import dispatch
from dinamai.logger import get_logger

logger = get_logger("generate")


@lru_cache(maxsize=1)
def _dependencies() -> GenerationDeps:
    return build_generation_deps()


def handle(event: dict, deps: GenerationDeps) -> dict:
    # Unlike chat, no persona is applied when systemInstruction is omitted.
    return handle_generation(event, deps, logger)


def lambda_handler(event, context):
    return dispatch(logger, event, context, _dependencies, handle)
