from typing import Literal

from pydantic_settings import BaseSettings

DEFAULT_SYSTEM_PROMPT = (
    "You are SMILE AI, a kind and supportive emotional assistant. You are not a therapist. "
    "Respond with empathy, short sentences, and one gentle question."
)


class Settings(BaseSettings):
    database_url: str = "sqlite:///./smile.db"
    debug: bool = False
    log_level: str = "INFO"

    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"
    openai_base_url: str = "https://api.openai.com/v1"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 200
    llm_timeout_seconds: float = 20.0

    history_limit: int = 10
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    twilio_auth_token: str = ""
    twilio_account_sid: str = ""
    twilio_whatsapp_number: str = ""
    twilio_reply_mode: Literal["twiml", "api"] = "twiml"
    public_base_url: str = ""

    cors_allow_origins: str = "*"

    class Config:
        env_file = ".env"
        extra = "ignore"


settings = Settings()
