import os
import logging
from dataclasses import dataclass
from dotenv import load_dotenv


def _env_flag(name:str, default:str='false') -> bool:
    return os.getenv(name, default).strip().lower() in {'1', 'true', 'yes', 'on'}


@dataclass(frozen=True)
class BlogConfig:
    '''Settings for one running blog. Built once and passed down explicitly.'''
    database_url : str = 'sqlite:///data.db'
    post_limit : int = 50
    max_post_length : int = 5000
    secure_cookie : bool = False
    title : str = 'Textpad'
    log_level : str = 'INFO'
    port : int = 5000
    tls : bool = False

    @classmethod
    def from_env(cls) -> 'BlogConfig':
        load_dotenv()
        return cls(
            database_url=os.getenv('DATABASE_URL', cls.database_url),
            post_limit=int(os.getenv('BLOG_POST_LIMIT', str(cls.post_limit))),
            max_post_length=int(os.getenv('BLOG_MAX_POST_LENGTH', str(cls.max_post_length))),
            secure_cookie=_env_flag('BLOG_SECURE_COOKIE'),
            title=os.getenv('BLOG_TITLE', cls.title),
            log_level=os.getenv('LOG_LEVEL', cls.log_level),
            port=int(os.getenv('BLOG_PORT', str(cls.port))),
            tls=_env_flag('BLOG_TLS'),
        )


def setup_logging(level:str='INFO') -> None:
    '''Attach a console handler to the root logger, once.'''
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S',
    ))
    root.addHandler(handler)
