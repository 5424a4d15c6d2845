# Tools module
from .llm_service import LLMService
from .provider_manager import ProviderManager
from .json_extract import extract_json_object, parse_first_int
