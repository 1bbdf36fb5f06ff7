from config import DEFAULT_MODEL, Settings


def test_from_env_reads_values():
    settings = Settings.from_env({
        "GEMINI_API_KEY": " secret ",
        "GEMINI_MODEL": "gemini-2.0-flash",
        "GEMINI_API_BASE": "http://localhost:8080/v1beta/",
        "GEMINI_TIMEOUT": "12.5",
        "MAX_CONTENT_LENGTH": "1024",
    })
    assert settings.gemini_api_key == "secret"
    assert settings.gemini_model == "gemini-2.0-flash"
    assert settings.gemini_api_base == "http://localhost:8080/v1beta"
    assert settings.request_timeout == 12.5
    assert settings.max_content_length == 1024


def test_blank_key_is_absent():
    settings = Settings.from_env({"GEMINI_API_KEY": "   "})
    assert settings.gemini_api_key is None
    assert not settings.has_api_key
    assert settings.gemini_model == DEFAULT_MODEL
    assert settings.request_timeout is None
