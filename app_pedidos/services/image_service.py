# ==============================================================================
# SERVICIO DE IMÁGENES
# ==============================================================================
# - Comprobantes de transferencia: siempre data URI base64 en la base.
# - Imágenes de productos: archivo en disco o data URI según IMAGE_STORAGE.
#   En deploys serverless el disco no persiste entre requests, por eso
#   existe el modo 'embedded'.
# ==============================================================================

import base64
import mimetypes
import os
import uuid
from dataclasses import dataclass
from typing import Optional

from werkzeug.datastructures import FileStorage
from werkzeug.utils import secure_filename


# Tipos aceptados para comprobantes de pago
RECEIPT_MIMETYPES = frozenset(['image/jpeg', 'image/jpg', 'image/png', 'image/webp'])

# Extensiones aceptadas para imágenes de productos
ALLOWED_EXTENSIONS = {"png", "jpg", "jpeg", "gif", "webp"}

STORAGE_FILESYSTEM = 'filesystem'
STORAGE_EMBEDDED = 'embedded'


@dataclass
class UploadedImage:
    """
    Imagen recibida en un request, ya leída a memoria.

    Attributes:
        data: Bytes del archivo
        mimetype: Tipo MIME (image/png, ...)
        filename: Nombre original (solo informativo)
    """
    data: bytes
    mimetype: str
    filename: str = ''

    @classmethod
    def from_file_storage(cls, file: Optional[FileStorage]) -> Optional['UploadedImage']:
        """
        Lee un archivo subido (request.files[...]).

        Returns:
            UploadedImage, o None si no se envió archivo o vino vacío
        """
        if file is None or not file.filename:
            return None
        data = file.read()
        if not data:
            return None
        mimetype = (file.mimetype or '').lower()
        if not mimetype or mimetype == 'application/octet-stream':
            mimetype = mimetypes.guess_type(file.filename)[0] or ''
        return cls(data=data, mimetype=mimetype, filename=file.filename)

    @property
    def size(self) -> int:
        return len(self.data)


def encode_data_uri(data: bytes, mimetype: str) -> str:
    """
    Codifica bytes como data URI: data:image/png;base64,....
    """
    encoded = base64.b64encode(data).decode('ascii')
    return f"data:{mimetype};base64,{encoded}"


def allowed_file(filename: str) -> bool:
    return "." in filename and filename.rsplit(".", 1)[1].lower() in ALLOWED_EXTENSIONS


def extension_for(image: UploadedImage) -> str:
    """Extensión del archivo: la del nombre original o la del MIME."""
    if image.filename and allowed_file(image.filename):
        return image.filename.rsplit(".", 1)[1].lower()
    guessed = (mimetypes.guess_extension(image.mimetype or '') or '').lstrip('.')
    if guessed in ('jpe', 'jpeg'):
        return 'jpg'
    return guessed or 'png'


class ImageStore:
    """
    Guarda imágenes de productos.

    Uso:
        store = ImageStore('filesystem', '/app/uploads')
        url = store.save_product_image(image)   # '/uploads/products/producto-....png'
    """

    PRODUCTS_SUBDIR = 'products'
    URL_PREFIX = '/uploads'

    def __init__(self, storage: str = STORAGE_FILESYSTEM, upload_dir: str = ''):
        """
        Args:
            storage: 'filesystem' o 'embedded'
            upload_dir: Carpeta base para el modo filesystem
        """
        if storage not in (STORAGE_FILESYSTEM, STORAGE_EMBEDDED):
            raise ValueError(f"IMAGE_STORAGE inválido: {storage}")
        self.storage = storage
        self.upload_dir = upload_dir

    @property
    def embedded(self) -> bool:
        return self.storage == STORAGE_EMBEDDED

    def is_allowed(self, image: UploadedImage) -> bool:
        """Solo imágenes (por nombre o por MIME)."""
        if image.filename and allowed_file(image.filename):
            return True
        return (image.mimetype or '').startswith('image/') and \
            extension_for(image) in ALLOWED_EXTENSIONS

    def save_product_image(self, image: UploadedImage) -> str:
        """
        Persiste la imagen y devuelve la referencia a guardar en image_url.

        Returns:
            Data URI (embedded) o ruta pública /uploads/products/<archivo>
        """
        if self.embedded:
            return encode_data_uri(image.data, image.mimetype or 'image/png')

        folder = os.path.join(self.upload_dir, self.PRODUCTS_SUBDIR)
        os.makedirs(folder, exist_ok=True)
        base_name = secure_filename(f"producto-{uuid.uuid4().hex}.{extension_for(image)}")
        with open(os.path.join(folder, base_name), 'wb') as f:
            f.write(image.data)
        return f"{self.URL_PREFIX}/{self.PRODUCTS_SUBDIR}/{base_name}"

    def discard(self, image_url: Optional[str]) -> None:
        """Borra el archivo de una imagen guardada en disco (si quedó huérfana)."""
        prefix = f"{self.URL_PREFIX}/{self.PRODUCTS_SUBDIR}/"
        if self.embedded or not image_url or not image_url.startswith(prefix):
            return
        path = os.path.join(self.upload_dir, self.PRODUCTS_SUBDIR, os.path.basename(image_url))
        if os.path.isfile(path):
            os.remove(path)
