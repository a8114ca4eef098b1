import os, sys, shutil, logging, subprocess
from datetime import datetime
from flask import Blueprint, Flask, render_template, redirect, request, url_for, current_app, Response
from sqlalchemy.exc import SQLAlchemyError
from typing import Union, Optional, Any, Sequence
import csrf
from config import BlogConfig, setup_logging
from models import db, Post
from service import (
    PostService, PostServiceError, InvalidCsrf, InvalidIdentifier,
    ClientMeta, StatusMessage,
)

logger = logging.getLogger(__name__)

file_dir : str = os.path.dirname(os.path.realpath(__file__))
frozen_dir : str = os.path.dirname(sys.executable)
executable_dir : str = file_dir
if getattr(sys, 'frozen', False):
    executable_dir = frozen_dir

CERT_FILE : str = os.path.join(executable_dir, 'instance', 'cert.pem')
KEY_FILE : str = os.path.join(executable_dir, 'instance', 'key.pem')


bp : Blueprint = Blueprint('blog', __name__)


def format_timestamp(value:Optional[datetime]) -> str:
    if not value:
        return ''
    return value.strftime('%Y-%m-%d %H:%M')


def render_page(posts:Sequence[Post], csrf_token:str, message:Optional[StatusMessage], config:BlogConfig) -> str:
    '''Render the form, the status message and the post list. Output depends only on the arguments.'''
    return render_template(
        'index.html',
        posts=posts,
        csrf_token=csrf_token,
        message=message,
        blog=config,
        table_name=Post.__tablename__,
        max_length=config.max_post_length,
    )


def get_service() -> PostService:
    return current_app.extensions['post_service']


def page_response(message:Optional[StatusMessage]=None, status:int=200) -> tuple[str, int]:
    service : PostService = get_service()
    try:
        posts : list[Post] = service.list_recent_posts()
    except PostServiceError as error:
        posts = []
        if message is None:
            message = StatusMessage.from_error(error)
            status = error.status_code
    return render_page(posts, csrf.get_token(), message, service.config), status


def redirect_home() -> Response:
    return redirect(url_for('blog.index'), code=303)


@bp.route('/', methods=['GET', 'POST'])
def index() -> Union[str, Any]:
    service : PostService = get_service()

    if request.method == 'POST':
        try:
            if not csrf.validate(request):
                raise InvalidCsrf()
            service.create_post(
                request.form.get('text', ''),
                ClientMeta(
                    remote_address=request.remote_addr,
                    user_agent=request.headers.get('User-Agent', ''),
                ),
            )
        except PostServiceError as error:
            current_app.logger.info('Post rejected: %s', error.message)
            return page_response(StatusMessage.from_error(error), error.status_code)
        return redirect_home()

    post_id : Optional[str] = request.args.get('delete')
    if post_id is not None:
        try:
            service.delete_post(post_id)
        except InvalidIdentifier:
            current_app.logger.debug('Ignoring malformed delete id %r', post_id)
        except PostServiceError as error:
            return page_response(StatusMessage.from_error(error), error.status_code)
        else:
            return redirect_home()

    return page_response()


@bp.app_errorhandler(404)
def not_found(_error) -> Union[str, Any]:
    return page_response(StatusMessage(kind='error', text='Page not found.'), 404)


def create_app(config:Optional[BlogConfig]=None) -> Flask:
    config = config or BlogConfig.from_env()
    setup_logging(config.log_level)

    app : Flask = Flask(__name__)
    app.config['SQLALCHEMY_DATABASE_URI'] = config.database_url
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    app.jinja_env.filters['timestamp'] = format_timestamp

    csrf.init_app(app, secure=config.secure_cookie)
    app.extensions['post_service'] = PostService(config)
    app.register_blueprint(bp)

    try:
        db.init_app(app)
        with app.app_context():
            db.create_all()
    except (SQLAlchemyError, ImportError):
        logger.critical('Cannot prepare database at %s', config.database_url)
        raise

    return app


def generate_self_signed_cert(cert_file:str=CERT_FILE, key_file:str=KEY_FILE) -> bool:
    '''Generate a self-signed certificate if it does not exist. Returns whether one is available.'''
    if os.path.isfile(cert_file) and os.path.isfile(key_file):
        return True

    if not shutil.which('openssl'):
        logger.warning('openssl not found, no certificate generated')
        return False

    os.makedirs(os.path.dirname(cert_file), exist_ok=True)
    logger.info('Generating self-signed certificate...')
    subprocess.run(
        [
            'openssl',
            'req',
            '-x509',
            '-newkey',
            'rsa:4096',
            '-keyout',
            key_file,
            '-out',
            cert_file,
            '-days',
            '365',
            '-nodes',
            '-subj',
            '/CN=localhost',
        ],
        check=True,
    )
    logger.info('Self-signed certificate generated')
    return True


def main() -> None:
    config : BlogConfig = BlogConfig.from_env()
    app : Flask = create_app(config)
    ssl_context : Optional[tuple[str, str]] = None
    if config.tls and generate_self_signed_cert():
        ssl_context = (CERT_FILE, KEY_FILE)
    logger.info('%s running on port %d%s', config.title, config.port, ' (TLS)' if ssl_context else '')
    app.run(host='0.0.0.0', port=config.port, ssl_context=ssl_context)


if __name__ == '__main__':
    main()
