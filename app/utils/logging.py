import uuid
import logging

logger = logging.getLogger(__name__)


def get_extra_data_log(obj: object) -> dict:
    return {
        column.name: getattr(obj, column.name)
        for column in obj.__table__.columns
    }


def generate_transaction_id() -> str:
    return f"txn_{uuid.uuid4().hex}"


def generate_cron_log_id(job_name: str) -> str:
    # беремо перші літери кожного слова
    prefix = "".join(word[0] for word in job_name.split("-"))

    return f"cron_{prefix}_{uuid.uuid4().hex[:12]}"
