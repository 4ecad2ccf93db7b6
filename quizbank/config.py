import os
from pydantic import BaseModel
from dotenv import load_dotenv

load_dotenv()

class Settings(BaseModel):
    data_dir: str = os.getenv("QUIZBANK_DATA_DIR", ".quizbank")
    csv_encoding: str = os.getenv("QUIZBANK_CSV_ENCODING", "gbk")
    csv_delimiter: str = os.getenv("QUIZBANK_CSV_DELIMITER", ",")
    default_threshold: int = int(os.getenv("QUIZBANK_DEFAULT_THRESHOLD", "3"))
    finalize_grace_seconds: float = float(os.getenv("QUIZBANK_FINALIZE_GRACE_SECONDS", "1.5"))
    auto_confirm: bool = os.getenv("QUIZBANK_AUTO_CONFIRM", "true").lower() == "true"
    log_level: str = os.getenv("QUIZBANK_LOG_LEVEL", "DEBUG")
    host: str = os.getenv("QUIZBANK_HOST", "127.0.0.1")
    port: int = int(os.getenv("QUIZBANK_PORT", "8000"))

settings = Settings()
