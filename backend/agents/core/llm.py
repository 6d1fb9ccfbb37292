"""
Reasoning Client - structured LLM calls

Responsibilities:
- Wrap the Gemini chat model behind a small request/response interface
- Turn model output into pydantic objects via PydanticOutputParser
- Separate parse failures (retryable with a hint) from transport failures

This is the only module that talks to the reasoning model. Everything
downstream works with structured data.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Type, TypeVar

from pydantic import BaseModel, ValidationError
from langchain_core.exceptions import OutputParserException
from langchain_core.output_parsers import PydanticOutputParser
from langchain_core.prompts import ChatPromptTemplate
from langchain_google_genai import ChatGoogleGenerativeAI

from config import AI_MODEL, AI_TEMPERATURE, AI_REQUEST_TIMEOUT, AI_MAX_RETRIES, require_gemini_api_key

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class ReasoningError(Exception):
    """Raised when the reasoning model cannot be reached or fails"""
    pass


class ReasoningParseError(ReasoningError):
    """Raised when the model answered but the answer does not fit the schema"""
    pass


class ReasoningClient(ABC):
    """Anything that can answer a prompt with a pydantic object"""

    @abstractmethod
    def generate(self, system: str, user: str, schema: Type[T]) -> T:
        """
        Args:
            system: System instructions
            user: User message
            schema: Pydantic model the answer must validate against

        Raises:
            ReasoningParseError: Output did not match the schema
            ReasoningError: Any other failure
        """
        ...


class GeminiReasoningClient(ReasoningClient):
    """
    Gemini via langchain-google-genai.

    The chat model is created on first use so that importing the pipeline
    does not require an API key.
    """

    def __init__(self, model: str = AI_MODEL, temperature: float = AI_TEMPERATURE, api_key: Optional[str] = None):
        self.model = model
        self.temperature = temperature
        self._api_key = api_key
        self._llm = None

    @property
    def llm(self):
        if self._llm is None:
            self._llm = ChatGoogleGenerativeAI(
                google_api_key=self._api_key or require_gemini_api_key(),
                model=self.model,
                temperature=self.temperature,
                max_retries=AI_MAX_RETRIES,
                request_timeout=AI_REQUEST_TIMEOUT,
                transport="rest",  # REST avoids gRPC proxy issues
            )
        return self._llm

    def generate(self, system: str, user: str, schema: Type[T]) -> T:
        parser = PydanticOutputParser(pydantic_object=schema)
        prompt_template = ChatPromptTemplate.from_messages([
            ("system", "{system}\n\n{format_instructions}"),
            ("user", "{user}"),
        ])
        chain = prompt_template | self.llm | parser

        try:
            return chain.invoke({
                "system": system,
                "user": user,
                "format_instructions": parser.get_format_instructions(),
            })
        except (OutputParserException, ValidationError) as e:
            logger.warning(f"[Reasoning] {schema.__name__} parse failed: {e}")
            raise ReasoningParseError(f"Could not parse {schema.__name__}: {e}") from e
        except Exception as e:
            logger.error(f"[Reasoning] Model call failed: {e}")
            raise ReasoningError(f"Reasoning model call failed: {e}") from e


__all__ = ["ReasoningClient", "GeminiReasoningClient", "ReasoningError", "ReasoningParseError"]
