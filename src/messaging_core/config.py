from dataclasses import dataclass, field
from environs import Env


@dataclass
class JWTConfig:
    secret_key: str
    access_token_minutes: int = 480


@dataclass
class DBConfig:
    """ PostgreSQL """
    host: str | None = None
    port: int | None = None
    name: str | None = None
    user: str | None = None
    password: str | None = None

    """ SQLite """
    path: str | None = None

    echo: bool = False

    @property
    def url(self) -> str:
        if self.host:
            return f"postgresql+asyncpg://{self.user}:{self.password}@{self.host}:{self.port}/{self.name}"
        return f"sqlite+aiosqlite:///{self.path}"


@dataclass
class StorageConfig:
    root: str = 'data/objects'
    base_url: str = 'http://localhost:8000/objects'


@dataclass
class IndexConfig:
    max_write_attempts: int = 5


@dataclass
class Config:
    """ Config """
    jwt: JWTConfig
    db: DBConfig
    storage: StorageConfig = field(default_factory=StorageConfig)
    index: IndexConfig = field(default_factory=IndexConfig)


def load_config(path: str | None) -> Config:
    env = Env()
    env.read_env(path)

    return Config(
        jwt=JWTConfig(
            secret_key=env('SECRET_KEY'),
            access_token_minutes=env.int('ACCESS_TOKEN_EXPIRE_MINUTES', 480),
        ),
        db=DBConfig(
            host=env('DB_HOST', None),
            port=env.int('DB_PORT', None),
            name=env('DB_NAME', None),
            user=env('DB_USER', None),
            password=env('DB_PASSWORD', None),
            path=env('DB_PATH', 'data/messenger.db'),
            echo=env.bool('DB_ECHO', False)
        ),
        storage=StorageConfig(
            root=env('STORAGE_ROOT', 'data/objects'),
            base_url=env('STORAGE_BASE_URL', 'http://localhost:8000/objects')
        ),
        index=IndexConfig(
            max_write_attempts=env.int('INDEX_MAX_WRITE_ATTEMPTS', 5)
        )
    )
