"""Morph key and gender normalization."""

import logging
import re

logger = logging.getLogger(__name__)

_PREFIXES = (
    re.compile(r"^BS_LOD0\.Body"),
    re.compile(r"^BS_LOD0\.Face"),
    re.compile(r"^BS_LOD0\.Anim"),
    re.compile(r"^Body"),
    re.compile(r"^Face"),
    re.compile(r"^Anim"),
)
_SNAKE_SEGMENT = re.compile(r"_([a-z])")

# Lowercased spelling -> canonical DB key
SPECIAL_CASES = {
    "bighips": "bigHips",
    "asslarge": "assLarge",
    "narrowwaist": "narrowWaist",
    "pearfigure": "pearFigure",
    "superbreast": "superBreast",
    "breastssmall": "breastsSmall",
    "breastssag": "breastsSag",
    "bodybuildersize": "bodybuilderSize",
    "bodybuilderdetails": "bodybuilderDetails",
    "animewaist": "animeWaist",
    "animeproportion": "animeProportion",
    "animeneck": "animeNeck",
    "dollbody": "dollBody",
    "facelowereyelashlength": "FaceLowerEyelashLength",
    "eyesclosedl": "eyesClosedL",
    "eyesclosedr": "eyesClosedR",
    "eyelashlength": "eyelashLength",
    "eyelashesspecial": "eyelashesSpecial",
    "eyesshape": "eyesShape",
    "eyesspacing": "eyesSpacing",
    "eyesdown": "eyesDown",
    "eyesup": "eyesUp",
    "eyesspacingwide": "eyesSpacingWide",
    "facejawwidth": "FaceJawWidth",
    "facecheekfullness": "FaceCheekFullness",
    "facenosesize": "FaceNoseSize",
    "faceeyesize": "FaceEyeSize",
    "facelipthickness": "FaceLipThickness",
    "facechinlength": "FaceChinLength",
    "faceforeheadheight": "FaceForeheadHeight",
    "facebrowheight": "FaceBrowHeight",
    "faceearsize": "FaceEarSize",
    "faceheadsize": "FaceHeadSize",
    "facenarrow": "FaceNarrow",
    "facenoseangle": "FaceNoseAngle",
    "facenosehump": "FaceNoseHump",
    "facenosenarrow": "FaceNoseNarrow",
    "facenosesmall": "FaceNoseSmall",
    "facenosewide": "FaceNoseWide",
    "faceroundface": "FaceRoundFace",
    "facesymmetry": "FaceSymmetry",
    "facelongface": "FaceLongFace",
    "facecheekbones": "FaceCheekbones",
    "facemouthwidth": "FaceMouthWidth",
    "facemouthsize": "FaceMouthSize",
    "facelipstomegalips": "FaceLipsToMegalips",
    "facenostrilsflare": "FaceNostrilsFlare",
}


def to_canonical_key(key: str) -> str:
    """
    Convert any morph key variant to its canonical DB spelling.

    Strips Blender export prefixes, converts snake_case to camelCase and
    resolves known lowercase spellings.

    Examples:
        >>> to_canonical_key("BS_LOD0.BodyBigHips")
        'bigHips'
        >>> to_canonical_key("narrow_waist")
        'narrowWaist'
    """
    if not key:
        return ""

    normalized = key
    for prefix in _PREFIXES:
        normalized = prefix.sub("", normalized)

    if "_" in normalized:
        normalized = _SNAKE_SEGMENT.sub(lambda m: m.group(1).upper(), normalized)

    if normalized:
        normalized = normalized[0].lower() + normalized[1:]

    return SPECIAL_CASES.get(normalized.lower(), normalized)


def to_gender_key(gender: str) -> str:
    """Map masculine/feminine to male/female; male/female pass through."""
    if gender == "masculine":
        return "male"
    if gender == "feminine":
        return "female"
    return gender


def to_db_gender(gender: str) -> str:
    """Map male/female (or masculine/feminine) to the DB gender enum."""
    if gender in ("male", "masculine"):
        return "masculine"
    if gender in ("female", "feminine"):
        return "feminine"
    raise ValueError(f"Unsupported gender value: {gender!r}")
