import threading

# one running import per user (per process)
_active: set = set()
_lock = threading.Lock()


def acquire_import_lock(user_id) -> bool:
    with _lock:
        if user_id in _active:
            return False
        _active.add(user_id)
        return True


def release_import_lock(user_id) -> None:
    with _lock:
        _active.discard(user_id)


def is_import_locked(user_id) -> bool:
    with _lock:
        return user_id in _active


def reset_import_locks() -> None:
    with _lock:
        _active.clear()
