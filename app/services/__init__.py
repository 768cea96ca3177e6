from app.services.blob_store import BlobStore, LocalBlobStore, S3BlobStore, get_blob_store
from app.services.chain_factory import ChainFactory, get_chain_factory
from app.services.dispatcher import Dispatcher, dispatcher
from app.services.job_store import ConversionJob, JobStore, job_store
from app.services.reaper import ExpiryReaper, reaper

__all__ = [
    "BlobStore",
    "LocalBlobStore",
    "S3BlobStore",
    "get_blob_store",
    "ChainFactory",
    "get_chain_factory",
    "Dispatcher",
    "dispatcher",
    "ConversionJob",
    "JobStore",
    "job_store",
    "ExpiryReaper",
    "reaper",
]
