import os
import sys
import json
from dataclasses import dataclass
from enum import Enum

import requests
from mwclient.errors import APIError, FileExists, MwClientError

from commonswiki import (
    CommonsWiki, ExportConfig, CONFIG_FILE, SUPPORTED_EXTENSIONS,
    AuthenticationError, EligibilityError, TransportError, UploadConflictError,
)
from imagepage import ImageMetadata, check_eligible, make_file_name, make_image_page

# Enable dry-run mode (no actual uploads, just logging)
DRY_RUN = os.getenv("DRY_RUN", "false").lower() in ("true", "1", "yes")


class UploadStatus(Enum):
    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"


@dataclass
class UploadOutcome:
    status: UploadStatus
    name: str = ""
    reason: str = ""

    @property
    def succeeded(self):
        return self.status is UploadStatus.SUCCEEDED

    @classmethod
    def success(cls, name):
        return cls(UploadStatus.SUCCEEDED, name)

    @classmethod
    def skipped(cls, name, reason):
        return cls(UploadStatus.SKIPPED, name, reason)

    @classmethod
    def failed(cls, name, reason):
        return cls(UploadStatus.FAILED, name, reason)


@dataclass
class BatchSummary:
    initial_count: int
    succeeded_count: int

    @property
    def message(self):
        return f"exported {self.succeeded_count}/{self.initial_count} images"


class CommonsUploader(object):
    """Logged-in session against the wiki plus the single-file upload call."""

    def __init__(self, site=None, host="commons.wikimedia.org"):
        self.wiki = site
        self.host = host
        self.authenticated = False
        self.username = None

    def login(self, username, password) -> bool:
        """
        Establish the session once. Failures are reported and turned into False,
        the caller decides whether the export is offered at all.
        """
        try:
            if self.wiki is None:
                self.wiki = CommonsWiki.login(username, password, self.host)
            else:
                if not username or not password:
                    raise AuthenticationError("Wiki credentials missing.")
                self.wiki.login(username, password)
        except AuthenticationError as exc:
            print(f"[WIKI] Login failed: {exc.reason}", flush=True)
            return False
        except (MwClientError, requests.exceptions.RequestException) as exc:
            print(f"[WIKI] Login failed: {exc!r}", flush=True)
            return False

        self.authenticated = True
        self.username = username
        return True

    def require_login(self):
        if not self.authenticated:
            raise AuthenticationError("not logged in")

    def _upload(self, local_path, page_text, page_name, overwrite, comment):
        self.require_login()
        try:
            with open(local_path, "rb") as io:
                response = self.wiki.upload(
                    io,
                    filename=page_name,
                    description=page_text,
                    comment=comment,
                    ignore=overwrite,
                )
        except FileExists as exc:
            raise UploadConflictError(f'"{page_name}" already exists and overwriting is disabled') from exc
        except APIError as exc:
            raise TransportError(f"{exc.code}: {exc.info}") from exc
        except (MwClientError, requests.exceptions.RequestException) as exc:
            raise TransportError(repr(exc)) from exc
        except ValueError as exc:
            # non-JSON reply, e.g. a maintenance page
            raise TransportError(f"unreadable reply: {exc}") from exc
        except OSError as exc:
            raise TransportError(f"cannot read {local_path}: {exc.strerror}") from exc

        # chunked uploads return the whole reply instead of its "upload" part
        response = response or {}
        response = response.get("upload", response)
        result = response.get("result")
        if result == "Success":
            return response
        warnings = response.get("warnings") or {}
        if "exists" in warnings:
            raise UploadConflictError(f'"{page_name}" already exists and overwriting is disabled')
        raise TransportError(f"{result}: {', '.join(sorted(warnings)) or 'no details'}")

    def upload_file(self, local_path, page_text, page_name, overwrite, comment) -> UploadOutcome:
        """
        Upload the file and its description page in one request.

        Args:
            local_path (str): Temporary exported file.
            page_text (str): Wikitext of the file description page.
            page_name (str): Target name without the `File:` prefix.
            overwrite (bool): Replace an existing file of the same name.
            comment (str): Edit summary.
        """
        print(f'[WIKI] Uploading "File:{page_name}"...', flush=True)
        try:
            self._upload(local_path, page_text, page_name, overwrite, comment)
        except (UploadConflictError, TransportError) as exc:
            print(f"Upload failed for File:{page_name}: {exc.reason}", flush=True)
            return UploadOutcome.failed(page_name, exc.reason)
        return UploadOutcome.success(page_name)


class DryRunCommonsUploader(CommonsUploader):
    """wrapper for dryrun"""

    def login(self, username, password) -> bool:
        print(f"[DRY RUN] Would log in as: {username}", flush=True)
        self.authenticated = True
        self.username = username
        return True

    def _upload(self, local_path, page_text, page_name, overwrite, comment):
        self.require_login()
        print(f"[DRY RUN] Would upload file: {page_name} (overwrite={overwrite})", flush=True)
        return {"result": "Success", "filename": page_name}


class CommonsExport(object):
    """
    Runs one export batch: drops ineligible images, uploads the rest one by one
    and counts how many made it.
    """

    def __init__(self, config, uploader, status_callback=None):
        self.config = config
        self.uploader = uploader
        self._status_callback = status_callback
        self.initial_count = 0
        self.succeeded_count = 0
        self.outcomes = []

    def emit_status(self, stage, **kwargs):
        if self._status_callback is not None:
            self._status_callback(stage, **kwargs)

    def msgout(self, txt):
        print(txt, flush=True)
        self.emit_status("message", text=txt)

    @staticmethod
    def supported(extension):
        return extension.lower().lstrip(".") in SUPPORTED_EXTENSIONS

    def filter_eligible(self, images):
        out_images = []
        skipped = []
        for img in images:
            try:
                check_eligible(img)
            except EligibilityError as exc:
                if exc.reason == "no rights":
                    self.msgout(f"Error: {img.display_path} has no rights, cannot be exported to Wikimedia Commons")
                else:
                    self.msgout(
                        f"Error: {img.display_path} is missing a meaningful title and/or description, "
                        "won't be exported to Wikimedia Commons"
                    )
                skipped.append(UploadOutcome.skipped(img.display_path, exc.reason))
                self.emit_status("skipped", image=img.display_path, reason=exc.reason)
            else:
                out_images.append(img)

        self.initial_count = len(images)
        self.outcomes = skipped
        self.succeeded_count = 0
        return out_images, self.initial_count

    def store(self, image, tmp_exp_path, extension=""):
        """Called once for each exported image."""
        try:
            imagename = make_file_name(image, self.config.name_pattern, tmp_exp_path, extension)
        except EligibilityError as exc:
            self.msgout(f"Error: {image.display_path} has {exc.reason}, won't be exported to Wikimedia Commons")
            outcome = UploadOutcome.skipped(image.display_path, exc.reason)
            self.record_result(image, outcome)
            return outcome

        imagepage = make_image_page(image, self.config)
        outcome = self.uploader.upload_file(
            tmp_exp_path,
            imagepage,
            imagename,
            self.config.overwrite,
            self.config.comment,
        )
        if outcome.succeeded:
            self.msgout(f"exported {imagename}")
        self.record_result(image, outcome)
        return outcome

    def record_result(self, image, outcome):
        self.outcomes.append(outcome)
        if outcome.succeeded:
            self.succeeded_count += 1
        self.emit_status(
            "processing",
            image=image.display_path,
            name=outcome.name,
            status=outcome.status.value,
            uploaded=self.succeeded_count,
            total=self.initial_count,
        )

    def summary(self):
        return BatchSummary(self.initial_count, self.succeeded_count)

    def finalize(self):
        """Called once all images are processed and all store calls are finished."""
        summary = self.summary()
        self.msgout(summary.message)
        self.emit_status(
            "completed",
            uploaded=summary.succeeded_count,
            total=summary.initial_count,
        )
        return summary.message

    def run(self, images):
        eligible, _ = self.filter_eligible(images)
        for image in eligible:
            self.store(image, image.path or image.filename)
        self.finalize()
        return self.summary()


def register_export(config, uploader, status_callback=None):
    """Log in once; without a session the export is not offered at all."""
    if uploader.login(config.username, config.password):
        return CommonsExport(config, uploader, status_callback)
    print("Unable to log into Wikimedia Commons, export disabled.", flush=True)
    return None


def load_manifest(path):
    """
    Read the images to export from a JSON manifest, a list of objects carrying
    the metadata fields, the tag names and the local file `path`.
    """
    with open(path, "r", encoding="utf-8") as manifest:
        entries = json.load(manifest)

    base = os.path.dirname(os.path.abspath(path))
    images = []
    for entry in entries:
        image = ImageMetadata.from_dict(entry)
        if image.path and not os.path.isabs(image.path):
            image.path = os.path.join(base, image.path)
        images.append(image)
    return images


def main():
    if len(sys.argv) < 3:
        print("Usage: commons-export export <manifest.json> [naming pattern]")
        print("       commons-export preview <manifest.json> [naming pattern]")
        return 2

    mode = sys.argv[1]
    config = ExportConfig.load(CONFIG_FILE)
    if len(sys.argv) > 3:
        config.name_pattern = " ".join(sys.argv[3:])

    images = load_manifest(sys.argv[2])
    for image in images:
        ext = os.path.splitext(image.path or image.filename)[1]
        if not CommonsExport.supported(ext):
            print(f"Unsupported format {ext or '(none)'} for {image.display_path}, only "
                  + ", ".join(SUPPORTED_EXTENSIONS) + " can be exported.")
            return 1

    if mode == "preview":
        exporter = CommonsExport(config, DryRunCommonsUploader())
        eligible, _ = exporter.filter_eligible(images)
        for image in eligible:
            print("File:" + make_file_name(image, config.name_pattern, image.path or image.filename))
            print(make_image_page(image, config))
            print()
        return 0
    elif mode != "export":
        print(f'Unknown mode "{mode}".')
        return 2

    # the naming pattern in use is remembered for the next run
    config.save(CONFIG_FILE)

    uploader = DryRunCommonsUploader() if DRY_RUN else CommonsUploader(host=config.host)
    exporter = register_export(config, uploader)
    if exporter is None:
        return 1

    summary = exporter.run(images)
    return 0 if summary.succeeded_count == summary.initial_count else 1


if __name__ == "__main__":
    sys.exit(main())
