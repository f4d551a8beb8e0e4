from functools import lru_cache

from dinamai.generation import GenerationDeps, build_generation_deps, handle_generation
from dinamai.http import dispatch
from dinamai.logger import get_logger

logger = get_logger("chat")

DEFAULT_SYSTEM_INSTRUCTION = "You are a helpful and professional assistant."


@lru_cache(maxsize=1)
def _dependencies() -> GenerationDeps:
    # Built once per container, on the first request.
    return build_generation_deps()


def handle(event: dict, deps: GenerationDeps) -> dict:
    """
    Authenticated chat turn. Every request runs with the assistant persona
    unless the client supplies its own systemInstruction.
    """
    return handle_generation(event, deps, logger, DEFAULT_SYSTEM_INSTRUCTION)


def lambda_handler(event, context):
    return dispatch(logger, event, context, _dependencies, handle)
