import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from commonswiki import EligibilityError, TOOL_NAME, VERSION

INFO_FIELD_PREFIXES = ("{{Information field|", "{{InFi|")


@dataclass(frozen=True)
class Tag:
    name: str


def _as_tag(tag):
    if isinstance(tag, Tag):
        return tag
    if isinstance(tag, dict):
        return Tag(str(tag["name"]))
    return Tag(str(tag))


@dataclass
class ImageMetadata:
    """Read-only view of one image as handed over by the host."""
    filename: str
    title: str = ""
    description: str = ""
    creator: str | None = None
    rights: str = ""
    latitude: float | None = None
    longitude: float | None = None
    date_taken: str = ""
    exif_maker: str = ""
    exif_model: str = ""
    exif_lens: str = ""
    exif_aperture: float | None = None
    exif_focal_length: str = ""
    exif_iso: str = ""
    tags: list = field(default_factory=list)
    path: str = ""

    @classmethod
    def from_dict(cls, data):
        known = {name for name in cls.__dataclass_fields__}
        values = {k: v for k, v in data.items() if k in known}
        values["tags"] = [_as_tag(tag) for tag in data.get("tags") or []]
        if not values.get("filename"):
            values["filename"] = os.path.basename(values.get("path") or "")
        for key in ("title", "description", "rights", "date_taken", "exif_maker",
                    "exif_model", "exif_lens", "exif_focal_length", "exif_iso"):
            if values.get(key) is None:
                values[key] = ""
            else:
                values[key] = str(values[key])
        return cls(**values)

    @property
    def basename(self):
        # everything up to the first dot, like the host reports it
        match = re.search(r"[^.]+", self.filename)
        return match.group(0) if match else ""

    @property
    def display_path(self):
        return self.path or self.filename

    def tag_names(self):
        return [tag.name for tag in self.tags]


def check_eligible(image):
    if image.rights == "":
        raise EligibilityError("no rights")
    if image.title == "" and image.description == "":
        raise EligibilityError("no meaningful title/description")


def make_image_name(pattern, title, description, basename) -> str:
    """
    Resolve the `File:` page name (without extension) from the naming pattern.

    Recognized variables are $TITLE, $FILE_NAME and $DESCRIPTION. When both
    $TITLE and $DESCRIPTION are used but only one of them is available the
    name falls back to `$TITLE$DESCRIPTION ($FILE_NAME)`.
    """
    presdata = title + description
    if title != "" and description != "":
        outname = pattern.replace("$TITLE", title)
        outname = outname.replace("$FILE_NAME", basename)
        outname = outname.replace("$DESCRIPTION", description)
    elif "$TITLE" in pattern and "$DESCRIPTION" in pattern:
        outname = f"{presdata} ({basename})"
    else:
        outname = pattern.replace("$TITLE", presdata)
        outname = outname.replace("$FILE_NAME", basename)
        outname = outname.replace("$DESCRIPTION", presdata)

    if not outname.strip():
        outname = f"{presdata} ({basename})"
    return outname


def file_extension(tmp_exp_path, fallback=""):
    ext = os.path.splitext(tmp_exp_path)[1].lstrip(".")
    return ext or fallback.lstrip(".")


def make_file_name(image, pattern, tmp_exp_path, extension=""):
    ext = file_extension(tmp_exp_path, extension)
    if not ext:
        raise EligibilityError("no file extension")
    name = make_image_name(pattern, image.title, image.description, image.basename)
    return f"{name}.{ext}"


@dataclass
class TagClassification:
    desc_templates: str = ""
    other_fields: str = ""
    categories: list = field(default_factory=list)
    wikitext: list = field(default_factory=list)


def classify_tags(tags, desc_prefixes) -> TagClassification:
    """
    Sort tag names into the parts of the page they end up in.

    Matching is purely on prefixes: `{{<prefix>|...` goes into the description,
    `{{Information field|...` / `{{InFi|...` into the other fields, `Category:...`
    becomes a category link and any remaining `{{...` is copied verbatim.
    """
    result = TagClassification()
    discarded = set()

    for tag in tags:
        name = tag.name if isinstance(tag, Tag) else tag
        if any(name.startswith("{{" + prefix + "|") for prefix in desc_prefixes):
            result.desc_templates += name
            discarded.add(name)
        elif name.startswith(INFO_FIELD_PREFIXES):
            result.other_fields += name
            discarded.add(name)

    for tag in tags:
        name = tag.name if isinstance(tag, Tag) else tag
        if name in discarded:
            continue
        if name.startswith("Category:"):
            result.categories.append(f"[[{name}]]")
        elif name.startswith("{{"):
            result.wikitext.append(name)

    return result


def fmt_flt(num) -> str:
    """Round to one decimal (half away from zero) and drop a useless `.0`."""
    value = Decimal(str(num))
    if not value.is_finite():
        raise ValueError(f"not a finite number: {num}")
    rounded = value.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    if rounded == rounded.to_integral_value():
        return str(int(rounded))
    return str(rounded)


def _exif_number(value):
    if value is None or value == "":
        return None
    try:
        return fmt_flt(value)
    except (InvalidOperation, ValueError):
        return None


def format_date(date):
    # EXIF "YYYY:MM:DD hh:mm:ss" to ISO 8601
    return re.sub(r"(\d{4}):(\d\d):(\d\d)", r"\1-\2-\3", date)


def get_description(image, title_in_desc=True):
    if title_in_desc and image.description != "" and image.title != "":
        return f"{image.title}: {image.description}"
    elif image.description != "":
        return image.description
    return image.title


def make_author(author_pattern, username, creator=None):
    author = author_pattern.replace("$USERNAME", username)
    return author.replace("$CREATOR", creator or username)


def make_camera_categories(image):
    categories = []
    if image.exif_model != "":
        camera = " ".join(part for part in (image.exif_maker.capitalize(), image.exif_model) if part)
        if image.exif_lens != "":
            camera = f"{camera} and {image.exif_lens}"
        categories.append(f"[[Category:Taken with {camera}]]")

    aperture = _exif_number(image.exif_aperture)
    if aperture is not None:
        categories.append(f"[[Category:F-number f/{aperture}]]")
    focal_length = _exif_number(image.exif_focal_length)
    if focal_length is not None:
        categories.append(f"[[Category:Lens focal length {focal_length} mm]]")
    iso = _exif_number(image.exif_iso)
    if iso is not None:
        categories.append(f"[[Category:ISO speed rating {iso}]]")
    return categories


def make_image_page(image, config) -> str:
    """
    Generate the file description page for an image.

    Args:
        image (ImageMetadata): Metadata and tags of the exported image.
        config (ExportConfig): Language code, author pattern, username,
            description template prefixes and the title/camera toggles.

    Returns:
        str: Complete wikitext, one element per line.
    """
    tags = classify_tags(image.tags, config.desc_template_prefixes())

    imgpg = ["=={{int:filedesc}}==", "{{Information"]
    imgpg.append(
        f"|description={{{{{config.language}|1={get_description(image, config.title_in_desc)}}}}}"
        + tags.desc_templates
    )
    imgpg.append(f"|date={format_date(image.date_taken)}")
    imgpg.append("|source={{own}}")
    imgpg.append(f"|author={make_author(config.author_pattern, config.username, image.creator)}")
    imgpg.append(f"|other fields = {tags.other_fields}")
    imgpg.append("}}")

    if image.latitude is not None and image.longitude is not None:
        imgpg.append(f"{{{{Location |1={image.latitude} |2={image.longitude} }}}}")

    imgpg.append("=={{int:license-header}}==")
    imgpg.append(f"{{{{self|{image.rights}}}}}")
    imgpg.extend(tags.categories)
    imgpg.extend(tags.wikitext)

    if config.cat_cam:
        imgpg.extend(make_camera_categories(image))

    imgpg.append(f"[[Category:Uploaded with {TOOL_NAME} {VERSION}]]")
    return "\n".join(imgpg)
