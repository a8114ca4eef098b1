import re
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional
from sqlalchemy.exc import SQLAlchemyError
from config import BlogConfig
from models import db, Post, USER_AGENT_MAX_BYTES

logger = logging.getLogger(__name__)

POST_ID_PATTERN = re.compile(r'[a-fA-F0-9]{24}')
# ASCII whitespace and NUL only, non-breaking spaces count as text
TRIM_CHARACTERS : str = ' \t\n\r\x00\x0b'


class PostServiceError(Exception):
    '''Base for every failure that ends up as a status message on the page.'''
    status_code : int = 400
    default_message : str = 'Something went wrong.'

    def __init__(self, message:Optional[str]=None) -> None:
        super().__init__(message or self.default_message)
        self.message : str = message or self.default_message


class ValidationError(PostServiceError):
    status_code = 400


class EmptyInput(ValidationError):
    default_message = 'Please write something before posting.'


class TooLong(ValidationError):
    default_message = 'Post is too long (max 5000 chars).'


class InvalidCsrf(ValidationError):
    default_message = 'Invalid CSRF token.'


class InvalidIdentifier(ValidationError):
    default_message = 'Invalid post identifier.'


class PersistenceError(PostServiceError):
    status_code = 500
    default_message = 'Database error.'


@dataclass(frozen=True)
class ClientMeta:
    remote_address : Optional[str] = None
    user_agent : Optional[str] = None


@dataclass(frozen=True)
class StatusMessage:
    kind : str
    text : str

    @classmethod
    def from_error(cls, error:PostServiceError) -> 'StatusMessage':
        return cls(kind='error', text=error.message)


def generate_post_id() -> str:
    return secrets.token_hex(12)


def generate_unique_post_id() -> str:
    candidate : str = generate_post_id()
    while Post.query.filter_by(post_id=candidate).first():
        candidate = generate_post_id()
    return candidate


def truncate_utf8(value:Optional[str], max_bytes:int) -> Optional[str]:
    '''Cut ``value`` to at most ``max_bytes`` of UTF-8 without splitting a character.'''
    if value is None:
        return None
    return value.encode('utf-8')[:max_bytes].decode('utf-8', errors='ignore')


def is_valid_post_id(post_id:str) -> bool:
    return bool(post_id) and POST_ID_PATTERN.fullmatch(post_id) is not None


def _describe(error:SQLAlchemyError) -> str:
    return str(getattr(error, 'orig', None) or error)


class PostService:
    '''Validates, stores, deletes and lists posts.

    Every write is a single insert or delete committed on its own; failures
    roll the session back and surface as :class:`PersistenceError` without
    retrying.
    '''

    def __init__(self, config:BlogConfig, clock:Callable[[], datetime]=datetime.utcnow) -> None:
        self.config : BlogConfig = config
        self.clock : Callable[[], datetime] = clock

    def create_post(self, text:Optional[str], client_meta:Optional[ClientMeta]=None) -> Post:
        text = (text or '').strip(TRIM_CHARACTERS)
        if not text:
            raise EmptyInput()
        if len(text) > self.config.max_post_length:
            raise TooLong(f'Post is too long (max {self.config.max_post_length} chars).')

        client_meta = client_meta or ClientMeta()
        try:
            post : Post = Post(
                post_id=generate_unique_post_id(),
                text=text,
                created_at=self.clock(),
                remote_address=client_meta.remote_address,
                user_agent=truncate_utf8(client_meta.user_agent, USER_AGENT_MAX_BYTES),
            )
            db.session.add(post)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.exception('Failed to save post')
            raise PersistenceError(f'Failed to save post: {_describe(error)}') from error

        logger.info('Created post %s (%d chars)', post.post_id, len(text))
        return post

    def delete_post(self, post_id:Optional[str]) -> int:
        if not post_id or not is_valid_post_id(post_id):
            raise InvalidIdentifier()

        try:
            post : Optional[Post] = Post.query.filter_by(post_id=post_id.lower()).first()
            if post is None:
                return 0
            db.session.delete(post)
            db.session.commit()
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.exception('Failed to delete post %s', post_id)
            raise PersistenceError(f'Delete failed: {_describe(error)}') from error

        logger.info('Deleted post %s', post_id)
        return 1

    def list_recent_posts(self, limit:Optional[int]=None) -> list[Post]:
        if limit is None:
            limit = self.config.post_limit
        if limit <= 0:
            return []
        try:
            return (
                Post.query
                .order_by(Post.created_at.desc(), Post.id.desc())
                .limit(limit)
                .all()
            )
        except SQLAlchemyError as error:
            db.session.rollback()
            logger.exception('Failed to load posts')
            raise PersistenceError(f'Failed to load posts: {_describe(error)}') from error
