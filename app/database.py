from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.orm import declarative_base

from .config import get_settings

# Base declarativa común para todos los modelos
Base = declarative_base()


class DatabaseManager:
    def __init__(self, database_url: str, echo: bool = False):
        self.database_url = database_url
        self.debug = echo

        self.engine = create_async_engine(
            self.database_url,
            echo=self.debug,
            future=True
        )
        self.session_factory = async_sessionmaker(
            self.engine,
            class_=AsyncSession,
            expire_on_commit=False
        )

    async def get_db(self):
        async with self.session_factory() as session:
            try:
                yield session
            finally:
                await session.close()


settings = get_settings()

# Inicialización del Manager
db_manager = DatabaseManager(settings.database_url, echo=settings.db_echo)

# Exportamos las herramientas para el resto de la app
engine = db_manager.engine
get_db = db_manager.get_db
AsyncSessionLocal = db_manager.session_factory
