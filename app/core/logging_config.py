import logging
import json
import os

from app.core.config import config
from app.models import CreditTransaction, CronRunLog
from app.schemas.runner import ScheduleRunDetail

# logging credits (transactions)
TRANSACTION_FIELDS = {c.name for c in CreditTransaction.__table__.columns}
# cron logging: журнал запуску + результат кожного розкладу
CRON_FIELDS = (
    {c.name for c in CronRunLog.__table__.columns}
    | set(ScheduleRunDetail.model_fields) - {"executed"}
)


class ModelFormatter(logging.Formatter):
    def __init__(self, fmt=None, fields=None):
        super().__init__(fmt)
        self.fields = fields or set()

    def format(self, record):
        base = super().format(record)
        extras = {k: v for k, v in record.__dict__.items() if k in self.fields}
        if extras:
            base += " " + json.dumps(extras, default=str, ensure_ascii=False)
        return base


def _file_logger(name: str, filename: str, formatter: logging.Formatter):
    handler = logging.FileHandler(os.path.join(config.LOG_DIR, filename))
    handler.setFormatter(formatter)
    logger = logging.getLogger(name)
    logger.setLevel(logging.INFO)
    logger.addHandler(handler)


# setup
def setup_logging():
    os.makedirs(config.LOG_DIR, exist_ok=True)

    fmt = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    formatter_tx = ModelFormatter(fmt, fields=TRANSACTION_FIELDS)
    formatter_cron = ModelFormatter(fmt, fields=CRON_FIELDS)

    # LEDGER: кожна мутація балансу
    _file_logger("[LEDGER]", "ledger.log", formatter_tx)
    # INTERNAL credits API
    _file_logger("[INTERNAL]", "internal_credits.log", formatter_tx)
    # CRON: запуски та розклади
    _file_logger("[CRON]", "cron.log", formatter_cron)

    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
