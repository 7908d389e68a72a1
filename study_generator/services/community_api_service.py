"""Business logic handlers for community chat APIs."""

COMMUNITY_TYPES = {'public', 'private'}
MEMBER_ROLES = {'admin', 'moderator', 'member'}
COMMUNITY_MODERATOR_ROLES = {'admin', 'moderator'}
REPORT_RESOLUTIONS = {'reviewed', 'dismissed'}
MAX_NAME_LEN = 80
MAX_DESCRIPTION_LEN = 500
MAX_MESSAGE_LEN = 4000
MAX_REASON_LEN = 500
MAX_BAN_HOURS = 24 * 365
DEFAULT_REPORT_REASON = 'Reported by user'


def _serialize_community(doc_id, data, member_count=None, membership_role=None):
    payload = {
        'id': doc_id,
        'name': data.get('name', ''),
        'description': data.get('description', ''),
        'type': data.get('type', 'public'),
        'created_by': data.get('created_by', ''),
        'created_at': data.get('created_at', 0),
    }
    if member_count is not None:
        payload['member_count'] = member_count
    if membership_role is not None:
        payload['membership_role'] = membership_role
    return payload


def _load_community(app_ctx, community_id):
    snapshot = app_ctx.community_repo.get_community_doc(app_ctx.db, community_id)
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def _membership_role(app_ctx, community_id, uid):
    snapshot = app_ctx.community_repo.get_member_doc(app_ctx.db, community_id, uid)
    if not snapshot.exists:
        return None
    role = (snapshot.to_dict() or {}).get('role', 'member')
    return role if role in MEMBER_ROLES else 'member'


def _active_ban(app_ctx, community_id, uid):
    snapshot = app_ctx.community_repo.get_ban_doc(app_ctx.db, community_id, uid)
    if not snapshot.exists:
        return None
    ban = snapshot.to_dict() or {}
    expires_at = ban.get('expires_at')
    if expires_at and float(expires_at) <= app_ctx.time.time():
        return None
    return ban


def _can_moderate(user, membership_role):
    return user.is_moderator or membership_role in COMMUNITY_MODERATOR_ROLES


def _can_read(community, membership_role, user):
    return community.get('type') == 'public' or membership_role is not None or user.is_moderator


def list_communities(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    scope = str(request.args.get('scope', 'browse') or 'browse').strip().lower()
    if scope not in {'browse', 'joined'}:
        return app_ctx.jsonify({'error': 'Invalid scope'}), 400
    try:
        communities = []
        if scope == 'browse':
            for doc in app_ctx.community_repo.list_public_communities(app_ctx.db, app_ctx.firestore):
                communities.append(_serialize_community(doc.id, doc.to_dict() or {}))
        else:
            for member_doc in app_ctx.community_repo.list_memberships_by_uid(app_ctx.db, user.uid):
                membership = member_doc.to_dict() or {}
                community_id = membership.get('community_id', '')
                community = _load_community(app_ctx, community_id) if community_id else None
                if community is None:
                    continue
                communities.append(_serialize_community(
                    community_id,
                    community,
                    membership_role=membership.get('role', 'member'),
                ))
        communities.sort(key=lambda item: item.get('created_at', 0) or 0, reverse=True)
        return app_ctx.jsonify({'communities': communities})
    except Exception as e:
        app_ctx.logger.error(f"Error listing communities ({scope}): {e}")
        return app_ctx.jsonify({'error': 'Could not fetch communities'}), 500


def create_community(app_ctx, request):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    name = str(data.get('name', '') or '').strip()
    description = str(data.get('description', '') or '').strip()[:MAX_DESCRIPTION_LEN]
    community_type = str(data.get('type', 'public') or 'public').strip().lower()
    if not name:
        return app_ctx.jsonify({'error': 'Community name is required'}), 400
    if len(name) > MAX_NAME_LEN:
        return app_ctx.jsonify({'error': f'Community name must be {MAX_NAME_LEN} characters or fewer'}), 400
    if community_type not in COMMUNITY_TYPES:
        return app_ctx.jsonify({'error': 'Community type must be public or private'}), 400

    now_ts = app_ctx.time.time()
    community = {
        'name': name,
        'description': description,
        'type': community_type,
        'created_by': user.uid,
        'created_at': now_ts,
        'updated_at': now_ts,
    }
    try:
        community_ref = app_ctx.community_repo.create_community_doc_ref(app_ctx.db)
        community_ref.set(community)
        app_ctx.community_repo.member_doc_ref(app_ctx.db, community_ref.id, user.uid).set({
            'community_id': community_ref.id,
            'user_id': user.uid,
            'role': 'admin',
            'joined_at': now_ts,
        })
    except Exception as e:
        app_ctx.logger.error(f"Error creating community for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not create community'}), 500

    app_ctx.logger.info(f"🏘️ Community '{name}' ({community_ref.id}) created by {user.uid}")
    return app_ctx.jsonify({
        'community': _serialize_community(community_ref.id, community, member_count=1, membership_role='admin'),
    }), 201


def get_community(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    try:
        community = _load_community(app_ctx, community_id)
        if community is None:
            return app_ctx.jsonify({'error': 'Community not found'}), 404
        membership_role = _membership_role(app_ctx, community_id, user.uid)
        if not _can_read(community, membership_role, user):
            return app_ctx.jsonify({'error': 'This community is private'}), 403
        member_count = app_ctx.community_repo.count_members(app_ctx.db, community_id)
    except Exception as e:
        app_ctx.logger.error(f"Error fetching community {community_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch community'}), 500

    payload = _serialize_community(community_id, community, member_count=member_count, membership_role=membership_role)
    payload['can_moderate'] = _can_moderate(user, membership_role)
    return app_ctx.jsonify({'community': payload})


def join_community(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    try:
        community = _load_community(app_ctx, community_id)
        if community is None:
            return app_ctx.jsonify({'error': 'Community not found'}), 404
        if community.get('type') != 'public':
            return app_ctx.jsonify({'error': 'This community is private'}), 403
        if _active_ban(app_ctx, community_id, user.uid):
            return app_ctx.jsonify({'error': 'You have been banned from this community'}), 403
        if _membership_role(app_ctx, community_id, user.uid) is not None:
            return app_ctx.jsonify({'error': "You're already part of this community"}), 409
        app_ctx.community_repo.member_doc_ref(app_ctx.db, community_id, user.uid).set({
            'community_id': community_id,
            'user_id': user.uid,
            'role': 'member',
            'joined_at': app_ctx.time.time(),
        })
    except Exception as e:
        app_ctx.logger.error(f"Error joining community {community_id} for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not join community'}), 500
    return app_ctx.jsonify({'ok': True, 'membership_role': 'member'})


def leave_community(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    try:
        if _membership_role(app_ctx, community_id, user.uid) is None:
            return app_ctx.jsonify({'error': 'You are not a member of this community'}), 404
        app_ctx.community_repo.member_doc_ref(app_ctx.db, community_id, user.uid).delete()
    except Exception as e:
        app_ctx.logger.error(f"Error leaving community {community_id} for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not leave community'}), 500
    return app_ctx.jsonify({'ok': True})


def _serialize_message(doc_id, data, authors):
    author = authors.get(data.get('user_id', ''), {})
    return {
        'id': doc_id,
        'community_id': data.get('community_id', ''),
        'user_id': data.get('user_id', ''),
        'author_name': _author_name(author),
        'author_badge': author.get('badge', ''),
        'content': data.get('content', ''),
        'message_type': data.get('message_type', 'text'),
        'voice_url': data.get('voice_url', ''),
        'created_at': data.get('created_at', 0),
    }


def _author_name(author):
    return author.get('real_name') or author.get('email') or 'Member'


def list_messages(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    after_raw = request.args.get('after')
    after_ts = None
    if after_raw not in (None, ''):
        try:
            after_ts = float(after_raw)
        except (TypeError, ValueError):
            return app_ctx.jsonify({'error': 'Invalid after timestamp'}), 400

    try:
        community = _load_community(app_ctx, community_id)
        if community is None:
            return app_ctx.jsonify({'error': 'Community not found'}), 404
        membership_role = _membership_role(app_ctx, community_id, user.uid)
        if not _can_read(community, membership_role, user):
            return app_ctx.jsonify({'error': 'This community is private'}), 403

        docs = app_ctx.community_repo.list_messages(app_ctx.db, app_ctx.firestore, community_id, after_ts=after_ts)
        rows = [(doc.id, doc.to_dict() or {}) for doc in docs]
        rows.sort(key=lambda row: row[1].get('created_at', 0) or 0)
        authors = {}
        for _doc_id, data in rows:
            author_uid = data.get('user_id', '')
            if author_uid and author_uid not in authors:
                authors[author_uid] = app_ctx.get_user_profile(author_uid) or {}
        messages = [_serialize_message(doc_id, data, authors) for doc_id, data in rows]
    except Exception as e:
        app_ctx.logger.error(f"Error listing messages for community {community_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch messages'}), 500

    latest_ts = messages[-1]['created_at'] if messages else after_ts
    return app_ctx.jsonify({'messages': messages, 'latest_ts': latest_ts})


def post_message(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    content = str(data.get('content', '') or '').strip()
    if not content:
        return app_ctx.jsonify({'error': 'Message cannot be empty'}), 400
    if len(content) > MAX_MESSAGE_LEN:
        return app_ctx.jsonify({'error': f'Message must be {MAX_MESSAGE_LEN} characters or fewer'}), 400

    limited = app_ctx.enforce_rate_limit(
        'message',
        user.uid,
        app_ctx.MESSAGE_RATE_LIMIT_MAX_REQUESTS,
        app_ctx.MESSAGE_RATE_LIMIT_WINDOW_SECONDS,
        'You are sending messages too quickly. Please slow down.',
    )
    if limited:
        return limited

    try:
        if _load_community(app_ctx, community_id) is None:
            return app_ctx.jsonify({'error': 'Community not found'}), 404
        if _active_ban(app_ctx, community_id, user.uid):
            return app_ctx.jsonify({'error': 'You have been banned from this community'}), 403
        if _membership_role(app_ctx, community_id, user.uid) is None:
            return app_ctx.jsonify({'error': 'Join this community to send messages'}), 403

        message = {
            'community_id': community_id,
            'user_id': user.uid,
            'content': content,
            'message_type': 'text',
            'voice_url': '',
            'created_at': app_ctx.time.time(),
        }
        message_ref = app_ctx.community_repo.create_message_doc_ref(app_ctx.db)
        message_ref.set(message)
    except Exception as e:
        app_ctx.logger.error(f"Error posting message to {community_id} for {user.uid}: {e}")
        return app_ctx.jsonify({'error': 'Could not send message'}), 500

    authors = {user.uid: user.profile or {}}
    return app_ctx.jsonify({'message': _serialize_message(message_ref.id, message, authors)}), 201


def _load_message(app_ctx, message_id):
    snapshot = app_ctx.community_repo.get_message_doc(app_ctx.db, message_id)
    if not snapshot.exists:
        return None
    return snapshot.to_dict() or {}


def delete_message(app_ctx, request, message_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    try:
        message = _load_message(app_ctx, message_id)
        if message is None:
            return app_ctx.jsonify({'error': 'Message not found'}), 404
        is_author = message.get('user_id') == user.uid
        if not is_author:
            membership_role = _membership_role(app_ctx, message.get('community_id', ''), user.uid)
            if not _can_moderate(user, membership_role):
                return app_ctx.jsonify({'error': 'Forbidden'}), 403
        app_ctx.community_repo.message_doc_ref(app_ctx.db, message_id).delete()
    except Exception as e:
        app_ctx.logger.error(f"Error deleting message {message_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not delete message'}), 500
    return app_ctx.jsonify({'ok': True})


def report_message(app_ctx, request, message_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    reason = str(data.get('reason', '') or '').strip()[:MAX_REASON_LEN] or DEFAULT_REPORT_REASON
    try:
        message = _load_message(app_ctx, message_id)
        if message is None:
            return app_ctx.jsonify({'error': 'Message not found'}), 404
        community_id = message.get('community_id', '')
        community = _load_community(app_ctx, community_id) or {}
        if not _can_read(community, _membership_role(app_ctx, community_id, user.uid), user):
            return app_ctx.jsonify({'error': 'Forbidden'}), 403
        report_ref = app_ctx.community_repo.create_report_doc_ref(app_ctx.db)
        report_ref.set({
            'message_id': message_id,
            'community_id': community_id,
            'reported_by': user.uid,
            'reason': reason,
            'status': 'pending',
            'created_at': app_ctx.time.time(),
            'reviewed_by': '',
            'reviewed_at': None,
        })
    except Exception as e:
        app_ctx.logger.error(f"Error reporting message {message_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not report message'}), 500

    app_ctx.logger.info(f"🚩 Message {message_id} reported by {user.uid}")
    return app_ctx.jsonify({'ok': True, 'report_id': report_ref.id}), 201


def list_reports(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error
    status = str(request.args.get('status', 'pending') or 'pending').strip().lower()
    if status not in {'pending', 'reviewed', 'dismissed'}:
        return app_ctx.jsonify({'error': 'Invalid status'}), 400
    try:
        if not _can_moderate(user, _membership_role(app_ctx, community_id, user.uid)):
            return app_ctx.jsonify({'error': 'Forbidden'}), 403
        reports = []
        for doc in app_ctx.community_repo.list_reports(app_ctx.db, community_id=community_id, status=status):
            report = doc.to_dict() or {}
            message = _load_message(app_ctx, report.get('message_id', '')) or {}
            report['id'] = doc.id
            report['message_content'] = message.get('content', '')
            report['message_user_id'] = message.get('user_id', '')
            reports.append(report)
        reports.sort(key=lambda item: item.get('created_at', 0) or 0, reverse=True)
    except Exception as e:
        app_ctx.logger.error(f"Error listing reports for {community_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not fetch reports'}), 500
    return app_ctx.jsonify({'reports': reports})


def resolve_report(app_ctx, request, report_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    status = str(data.get('status', '') or '').strip().lower()
    if status not in REPORT_RESOLUTIONS:
        return app_ctx.jsonify({'error': 'Status must be reviewed or dismissed'}), 400
    delete_reported = bool(data.get('delete_message', False))

    try:
        report_ref = app_ctx.community_repo.report_doc_ref(app_ctx.db, report_id)
        snapshot = report_ref.get()
        if not snapshot.exists:
            return app_ctx.jsonify({'error': 'Report not found'}), 404
        report = snapshot.to_dict() or {}
        if not _can_moderate(user, _membership_role(app_ctx, report.get('community_id', ''), user.uid)):
            return app_ctx.jsonify({'error': 'Forbidden'}), 403
        report_ref.set({
            'status': status,
            'reviewed_by': user.uid,
            'reviewed_at': app_ctx.time.time(),
        }, merge=True)
        if delete_reported and report.get('message_id'):
            app_ctx.community_repo.message_doc_ref(app_ctx.db, report['message_id']).delete()
    except Exception as e:
        app_ctx.logger.error(f"Error resolving report {report_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not resolve report'}), 500
    return app_ctx.jsonify({'ok': True, 'status': status, 'message_deleted': delete_reported})


def ban_member(app_ctx, request, community_id):
    user, error = app_ctx.authenticate_request(request)
    if error:
        return error

    data = request.get_json(silent=True) or {}
    target_uid = str(data.get('user_id', '') or '').strip()
    reason = str(data.get('reason', '') or '').strip()[:MAX_REASON_LEN]
    if not target_uid:
        return app_ctx.jsonify({'error': 'user_id is required'}), 400
    if target_uid == user.uid:
        return app_ctx.jsonify({'error': 'You cannot ban yourself'}), 400
    duration_hours = data.get('duration_hours')
    if duration_hours is not None:
        if isinstance(duration_hours, bool) or not isinstance(duration_hours, (int, float)):
            return app_ctx.jsonify({'error': 'duration_hours must be a number'}), 400
        if duration_hours < 1 or duration_hours > MAX_BAN_HOURS:
            return app_ctx.jsonify({'error': f'duration_hours must be between 1 and {MAX_BAN_HOURS}'}), 400

    try:
        if _load_community(app_ctx, community_id) is None:
            return app_ctx.jsonify({'error': 'Community not found'}), 404
        if not _can_moderate(user, _membership_role(app_ctx, community_id, user.uid)):
            return app_ctx.jsonify({'error': 'Forbidden'}), 403
        if _membership_role(app_ctx, community_id, target_uid) == 'admin' and not user.is_moderator:
            return app_ctx.jsonify({'error': 'Community admins cannot be banned'}), 403
        now_ts = app_ctx.time.time()
        ban = {
            'community_id': community_id,
            'user_id': target_uid,
            'banned_by': user.uid,
            'reason': reason,
            'banned_at': now_ts,
            'expires_at': (now_ts + float(duration_hours) * 3600) if duration_hours else None,
        }
        app_ctx.community_repo.ban_doc_ref(app_ctx.db, community_id, target_uid).set(ban)
        app_ctx.community_repo.member_doc_ref(app_ctx.db, community_id, target_uid).delete()
    except Exception as e:
        app_ctx.logger.error(f"Error banning {target_uid} from {community_id}: {e}")
        return app_ctx.jsonify({'error': 'Could not ban member'}), 500

    app_ctx.logger.info(f"⛔ {target_uid} banned from community {community_id} by {user.uid}")
    return app_ctx.jsonify({'ok': True, 'ban': ban})
