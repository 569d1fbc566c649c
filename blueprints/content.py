"""Post management endpoints.

Saving a post announces ``transition_post_status`` followed by
``save_post``; deleting one announces ``delete_post`` while the post still
exists.
"""

from flask import Blueprint, jsonify, request

from models import db, Post, POST_STATUSES
from helpers import current_user, safe_commit
from hooks import do_action
from blueprints.auth import login_required

content_bp = Blueprint('content', __name__, url_prefix='/posts')


def _post_to_dict(post: Post) -> dict:
    return {
        'id': post.id,
        'title': post.title,
        'content': post.content,
        'status': post.status,
        'author_id': post.author_id,
    }


def _payload() -> dict:
    return request.get_json(silent=True) or request.form.to_dict()


def _save(post: Post, data: dict, old_status: str, is_update: bool):
    status = data.get('status')
    if status is not None and status not in POST_STATUSES:
        return jsonify({'error': f'Unknown status {status!r}'}), 400
    title = data.get('title')
    if title is not None:
        post.title = str(title).strip()
    if 'content' in data:
        post.content = data.get('content')
    if status is not None:
        post.status = status
    if not is_update:
        db.session.add(post)
    safe_commit()
    do_action('transition_post_status', post.status, old_status, post)
    do_action('save_post', post.id, post, is_update)
    return jsonify(_post_to_dict(post)), 200 if is_update else 201


@content_bp.route('', methods=['GET'])
def list_posts():
    posts = Post.query.order_by(Post.id.desc()).all()
    return jsonify([_post_to_dict(p) for p in posts])


@content_bp.route('', methods=['POST'])
@login_required
def create_post():
    post = Post(author_id=current_user().id, title='', status='draft')
    return _save(post, _payload(), 'new', is_update=False)


@content_bp.route('/<int:post_id>', methods=['GET'])
def get_post(post_id: int):
    post = db.get_or_404(Post, post_id)
    return jsonify(_post_to_dict(post))


@content_bp.route('/<int:post_id>', methods=['POST', 'PUT'])
@login_required
def update_post(post_id: int):
    post = db.get_or_404(Post, post_id)
    return _save(post, _payload(), post.status, is_update=True)


@content_bp.route('/<int:post_id>/delete', methods=['POST'])
@login_required
def delete_post(post_id: int):
    post = db.get_or_404(Post, post_id)
    do_action('delete_post', post.id)
    db.session.delete(post)
    safe_commit()
    return jsonify({'deleted': post_id})
