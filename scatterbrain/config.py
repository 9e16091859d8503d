from pydantic_settings import BaseSettings
from dotenv import load_dotenv
import os

load_dotenv()

class Settings(BaseSettings):
    # OpenAI settings
    openai_api_key: str = os.getenv('OPENAI_API_KEY', '')
    openai_model: str = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')

    # Anthropic settings
    anthropic_api_key: str = os.getenv('ANTHROPIC_API_KEY', '')
    anthropic_model: str = os.getenv('ANTHROPIC_MODEL', 'claude-3-5-sonnet-20241022')

    # Perplexity speaks the OpenAI chat-completions protocol
    perplexity_api_key: str = os.getenv('PERPLEXITY_API_KEY', '')
    perplexity_model: str = os.getenv('PERPLEXITY_MODEL', 'sonar')
    perplexity_base_url: str = os.getenv('PERPLEXITY_BASE_URL', 'https://api.perplexity.ai')

    # Supabase settings
    supabase_url: str = os.getenv('SUPABASE_URL', '')
    supabase_key: str = os.getenv('SUPABASE_KEY', '')
    supabase_service_role_key: str = os.getenv('SUPABASE_SERVICE_ROLE_KEY', '')

    # Synthesis client settings
    synthesize_endpoint: str = os.getenv('SYNTHESIZE_ENDPOINT', 'http://localhost:8000/synthesize')
    cache_ttl_seconds: float = float(os.getenv('CACHE_TTL_SECONDS', '300'))
    max_retries: int = int(os.getenv('MAX_RETRIES', '3'))
    retry_base_delay: float = float(os.getenv('RETRY_BASE_DELAY', '1.0'))
    request_timeout: float = float(os.getenv('REQUEST_TIMEOUT', '60'))

    # API rate limiting
    rate_limit_max_attempts: int = int(os.getenv('RATE_LIMIT_MAX_ATTEMPTS', '10'))
    rate_limit_window_seconds: float = float(os.getenv('RATE_LIMIT_WINDOW_SECONDS', '60'))

    log_level: str = os.getenv('LOG_LEVEL', 'INFO')

    @property
    def service_key(self) -> str:
        return self.supabase_service_role_key or self.supabase_key

def get_settings() -> Settings:
    return Settings()
