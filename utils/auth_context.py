from flask import g
from models import db
from security.session import get_session_from_request
from models.user import User

def load_current_user():
    g.user = None
    g.session = None
    sess = get_session_from_request()
    if not sess:
        return
    user = db.session.get(User, sess.user_id)
    if user is None or not user.is_active:
        return
    g.session = sess
    g.user = user
