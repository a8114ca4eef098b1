'''Sessionless double-submit CSRF protection.

A random token lives in the ``csrf`` cookie and is echoed back in every form.
A write is accepted only when the two values match.
'''
import hmac
import secrets
from typing import Optional
from flask import Flask, Request, Response, g, request

CSRF_COOKIE_NAME : str = 'csrf'
CSRF_FORM_FIELD : str = 'csrf'
TOKEN_BYTES : int = 16


def generate_token() -> str:
    return secrets.token_hex(TOKEN_BYTES)


def tokens_match(expected:Optional[str], submitted:Optional[str]) -> bool:
    if not expected or not submitted:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), submitted.encode('utf-8'))


def get_token() -> str:
    '''Token for the current request, generating one if the client sent none.'''
    token : Optional[str] = g.get('csrf_token')
    if token is None:
        token = request.cookies.get(CSRF_COOKIE_NAME) or ''
        if not token:
            token = generate_token()
            g.csrf_token_is_new = True
        g.csrf_token = token
    return token


def validate(req:Request) -> bool:
    return tokens_match(req.cookies.get(CSRF_COOKIE_NAME), req.form.get(CSRF_FORM_FIELD))


def init_app(app:Flask, secure:bool=False) -> None:
    @app.before_request
    def _load_token() -> None:
        get_token()

    @app.after_request
    def _store_token(response:Response) -> Response:
        if g.get('csrf_token_is_new'):
            response.set_cookie(
                CSRF_COOKIE_NAME,
                g.csrf_token,
                path='/',
                secure=secure,
                httponly=True,
                samesite='Lax',
            )
        return response
