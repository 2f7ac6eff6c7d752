import os
import logging
from typing import Callable

from google.cloud import secretmanager
from google.oauth2 import service_account
from google.auth import default as google_auth_default

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session

from classes.entities import Base

logger = logging.getLogger("vicebot_backend")


class GCConnection:
    def __init__(self) -> None:
        # ---- env config (shared) ----
        self.PROJECT_ID   = os.getenv("GOOGLE_CLOUD_PROJECT", "")
        self.DB_HOST      = os.getenv("DB_HOST", "localhost")
        self.DB_PORT      = int(os.getenv("DB_PORT", "5432"))
        self.DB_NAME      = os.getenv("DB_NAME", "vicebot")
        self.DB_USER      = os.getenv("DB_USER", "postgres")
        self.DB_PASSWORD  = os.getenv("DB_PASSWORD", "")
        self.DB_SECRET_ID = os.getenv("DB_SECRET_ID", "")
        self._engine: Engine | None = None
        self._sessionmaker = None

        # DATABASE_URL (local Postgres or sqlite) wins over the Cloud SQL settings above
        self.DATABASE_URL = os.getenv("DATABASE_URL", "")
        self.IS_LOCAL = True
        if not self.DATABASE_URL:
            self.IS_LOCAL = False
            self.DATABASE_URL = (
                f"postgresql+pg8000://{self.DB_USER}:{self._get_db_password_lazy()}"
                f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
            )

    # -------- GCP auth / creds --------
    def _build_creds(self):
        key_path = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS")
        scopes = ["https://www.googleapis.com/auth/cloud-platform"]
        if key_path and os.path.exists(key_path):
            return service_account.Credentials.from_service_account_file(key_path, scopes=scopes)
        creds, _ = google_auth_default(scopes=scopes)
        return creds

    # -------- DB password (Secret Manager) --------
    def _get_db_password_lazy(self) -> str:
        if self.DB_PASSWORD:
            return self.DB_PASSWORD
        if self.DB_SECRET_ID:
            client = secretmanager.SecretManagerServiceClient(credentials=self._build_creds())
            name = client.secret_version_path(self.PROJECT_ID, self.DB_SECRET_ID, "latest")
            resp = client.access_secret_version(request={"name": name})
            self.DB_PASSWORD = resp.payload.data.decode("utf-8")
            return self.DB_PASSWORD
        raise RuntimeError("No DATABASE_URL, no DB_PASSWORD and no Secret Manager configured")

    def get_engine(self) -> Engine:
        if self._engine is None:
            connect_args = {"timeout": 10} if "pg8000" in self.DATABASE_URL else {}
            self._engine = create_engine(
                self.DATABASE_URL,
                future=True,
                pool_pre_ping=True,
                connect_args=connect_args,  # fail in 10s instead of hanging forever
            )
            logger.info(f"[DB] Engine ready ({'local url' if self.IS_LOCAL else 'cloud sql'})")
        return self._engine

    # -------- SQLAlchemy Session factory --------
    def build_db_session_factory(self, create_schema: bool = False) -> Callable[[], Session]:
        if self._sessionmaker is None:
            engine = self.get_engine()
            if create_schema:
                Base.metadata.create_all(engine)
            self._sessionmaker = sessionmaker(
                bind=engine,
                autoflush=False,
                autocommit=False,
                expire_on_commit=False,
                future=True,
            )

        def _factory() -> Session:
            return self._sessionmaker()

        return _factory
