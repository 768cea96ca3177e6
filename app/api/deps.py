from typing import Annotated

from fastapi import Depends, Header

from app.core.config import Settings, get_settings
from app.core.exceptions import OwnerRequiredException
from app.services.blob_store import BlobStore, get_blob_store
from app.services.dispatcher import Dispatcher, dispatcher


def get_owner(x_owner_id: Annotated[str | None, Header()] = None) -> str:
    """인증 계층이 전달한 소유자 ID"""
    if not x_owner_id or not x_owner_id.strip():
        raise OwnerRequiredException()
    return x_owner_id.strip()


def get_dispatcher() -> Dispatcher:
    return dispatcher


SettingsDep = Annotated[Settings, Depends(get_settings)]
OwnerDep = Annotated[str, Depends(get_owner)]
BlobStoreDep = Annotated[BlobStore, Depends(get_blob_store)]
DispatcherDep = Annotated[Dispatcher, Depends(get_dispatcher)]
