from shared.storage import S3Storage, get_storage


def get_storage_dep() -> S3Storage:
    return get_storage()
