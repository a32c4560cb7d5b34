# linkedbud/services/linkedin_api.py
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from urllib.parse import quote

import httpx

from linkedbud.config import settings

logger = logging.getLogger(__name__)

API_BASE = "https://api.linkedin.com/v2"
REST_BASE = "https://api.linkedin.com/rest"
UGC_URL = f"{API_BASE}/ugcPosts"
USERINFO_URL = f"{API_BASE}/userinfo"
REGISTER_UPLOAD_URL = f"{API_BASE}/assets?action=registerUpload"
UPLOAD_MECHANISM = "com.linkedin.digitalmedia.uploading.MediaUploadHttpRequest"

DEFAULT_TIMEOUT = httpx.Timeout(30, connect=5)
VIDEO_TIMEOUT = httpx.Timeout(300, connect=10)

RECIPES = {
    "image": "urn:li:digitalmediaRecipe:feedshare-image",
    "document": "urn:li:digitalmediaRecipe:feedshare-document",
    "video": "urn:li:digitalmediaRecipe:feedshare-video",
}

CONTENT_TYPES = {
    "image": ({"png": "image/png", "gif": "image/gif", "webp": "image/webp"}, "image/jpeg"),
    "document": (
        {
            "doc": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "docx": "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            "ppt": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
            "pptx": "application/vnd.openxmlformats-officedocument.presentationml.presentation",
        },
        "application/pdf",
    ),
    "video": (
        {
            "mov": "video/quicktime",
            "avi": "video/x-msvideo",
            "webm": "video/webm",
            "mkv": "video/x-matroska",
            "wmv": "video/x-ms-wmv",
        },
        "video/mp4",
    ),
}

PERSONAL_METRIC_QUERY_TYPES = ("IMPRESSION", "MEMBERS_REACHED", "RESHARE", "REACTION", "COMMENT")
RETRYABLE_STATUSES = (429, 500, 502, 503, 504)


class LinkedInAPIError(Exception):
    def __init__(self, status_code: int, message: str, request_id: Optional[str] = None):
        super().__init__(f"LinkedIn API error {status_code}: {message}")
        self.status_code = status_code
        self.message = message
        self.request_id = request_id


@dataclass
class LinkedInProfile:
    id: str
    first_name: str
    last_name: str
    profile_picture: Optional[str] = None

    def as_profile_data(self) -> Dict[str, Any]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "profilePicture": self.profile_picture,
        }


@dataclass
class PostMetrics:
    impressions: int = 0
    likes: int = 0
    comments: int = 0
    shares: int = 0
    clicks: int = 0
    engagement_rate: Optional[float] = field(default=None)

    def __post_init__(self):
        if self.engagement_rate is None and self.impressions > 0:
            self.engagement_rate = (self.likes + self.comments + self.shares) / self.impressions


def log_request_id(resp: httpx.Response) -> Optional[str]:
    req_id = resp.headers.get("x-restli-request-id")
    if req_id:
        logger.info("LinkedIn request id: %s", req_id)
    return req_id


def error_from_response(resp: httpx.Response, fallback: str) -> LinkedInAPIError:
    req_id = log_request_id(resp)
    message = fallback
    try:
        body = resp.json()
        message = body.get("message") or body.get("error_description") or fallback
    except ValueError:
        pass
    return LinkedInAPIError(resp.status_code, message, req_id)


def response_json(resp: httpx.Response, what: str) -> Dict[str, Any]:
    """Body of a successful LinkedIn response; unreadable bodies are API errors."""
    try:
        body = resp.json()
    except ValueError:
        raise LinkedInAPIError(resp.status_code, f"Invalid response while trying to {what}", log_request_id(resp))
    if not isinstance(body, dict):
        raise LinkedInAPIError(resp.status_code, f"Unexpected response while trying to {what}", log_request_id(resp))
    return body


def linkedin_request_with_retry(method: str, url: str, max_attempts: int = 4, backoff: float = 2, **kwargs) -> httpx.Response:
    """Retry 429/5xx answers and transport errors with linear backoff."""
    for attempt in range(1, max_attempts + 1):
        try:
            with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
                resp = c.request(method, url, **kwargs)
            if resp.status_code in RETRYABLE_STATUSES and attempt < max_attempts:
                log_request_id(resp)
                logger.warning("LinkedIn %s attempt %d got %d, retrying", url, attempt, resp.status_code)
                time.sleep(backoff * attempt)
                continue
            return resp
        except httpx.RequestError as e:
            logger.warning("LinkedIn request error on %s (attempt %d): %s", url, attempt, e)
            if attempt < max_attempts:
                time.sleep(backoff * attempt)
                continue
            raise
    raise RuntimeError(f"LinkedIn API failed after {max_attempts} attempts")


def _extension(filename: str) -> str:
    return filename.rsplit(".", 1)[-1].lower() if "." in filename else ""


def content_type_for(kind: str, filename: str) -> str:
    by_ext, default = CONTENT_TYPES[kind]
    return by_ext.get(_extension(filename), default)


class LinkedInClient:
    """Calls LinkedIn on behalf of one access token.

    Instances are cheap and meant to live for a single request or job
    iteration; nothing is cached between calls.
    """

    def __init__(self, access_token: str):
        self.access_token = access_token

    def _headers(self, restli: bool = False, versioned: bool = False) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.access_token}"}
        if restli:
            headers["X-Restli-Protocol-Version"] = "2.0.0"
        if versioned:
            headers["LinkedIn-Version"] = settings.linkedin_api_version
        return headers

    # --- profile ---

    def get_profile(self) -> LinkedInProfile:
        with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
            r = c.get(USERINFO_URL, headers=self._headers())
        if r.status_code != 200:
            raise error_from_response(r, "Failed to get LinkedIn profile information")
        data = response_json(r, "read the LinkedIn profile")
        return LinkedInProfile(
            id=str(data.get("sub") or data.get("id") or "unknown"),
            first_name=data.get("given_name") or data.get("firstName") or "LinkedIn",
            last_name=data.get("family_name") or data.get("lastName") or "User",
            profile_picture=data.get("picture") or data.get("profilePicture"),
        )

    def validate_token(self) -> bool:
        try:
            with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
                r = c.get(USERINFO_URL, headers=self._headers())
            return r.status_code == 200
        except httpx.HTTPError:
            return False

    def _default_author(self) -> str:
        return f"urn:li:person:{self.get_profile().id}"

    # --- assets ---

    def _upload_asset(self, kind: str, data: bytes, filename: str, author_urn: Optional[str]) -> str:
        owner = author_urn or self._default_author()
        payload = {
            "registerUploadRequest": {
                "recipes": [RECIPES[kind]],
                "owner": owner,
                "serviceRelationships": [{
                    "relationshipType": "OWNER",
                    "identifier": "urn:li:userGeneratedContent",
                }],
            }
        }
        timeout = VIDEO_TIMEOUT if kind == "video" else DEFAULT_TIMEOUT
        with httpx.Client(timeout=timeout) as c:
            reg = c.post(
                REGISTER_UPLOAD_URL,
                headers={**self._headers(restli=True), "Content-Type": "application/json"},
                json=payload,
            )
            if reg.status_code not in (200, 201):
                raise error_from_response(reg, f"Failed to register {kind} upload")
            try:
                value = response_json(reg, f"register {kind} upload")["value"]
                upload_url = value["uploadMechanism"][UPLOAD_MECHANISM]["uploadUrl"]
                asset_urn = value["asset"]
            except (KeyError, TypeError):
                raise LinkedInAPIError(reg.status_code, f"Malformed {kind} upload registration", log_request_id(reg))

            up = c.put(upload_url, headers={"Content-Type": content_type_for(kind, filename)}, content=data)
            if up.status_code not in (200, 201, 202):
                raise error_from_response(up, f"Failed to upload {kind} file")
        logger.info("Uploaded %s asset %s for %s", kind, asset_urn, owner)
        return asset_urn

    def upload_image_asset(self, data: bytes, filename: str, author_urn: Optional[str] = None) -> str:
        return self._upload_asset("image", data, filename, author_urn)

    def upload_document_asset(self, data: bytes, filename: str, author_urn: Optional[str] = None) -> str:
        return self._upload_asset("document", data, filename, author_urn)

    def upload_video_asset(self, data: bytes, filename: str, author_urn: Optional[str] = None) -> str:
        return self._upload_asset("video", data, filename, author_urn)

    # --- posts ---

    def publish_post(
        self,
        content: str,
        author_urn: Optional[str] = None,
        image_asset_urn: Optional[str] = None,
        document_asset_urn: Optional[str] = None,
        video_asset_urn: Optional[str] = None,
    ) -> str:
        """Create a UGC post and return its id. A missing author means the token owner."""
        author = author_urn or self._default_author()

        # one media item per post: video > document > image
        category, media_urn = "NONE", None
        if video_asset_urn:
            category, media_urn = "VIDEO", video_asset_urn
        elif document_asset_urn:
            category, media_urn = "ARTICLE", document_asset_urn
        elif image_asset_urn:
            category, media_urn = "IMAGE", image_asset_urn

        share: Dict[str, Any] = {
            "shareCommentary": {"text": content},
            "shareMediaCategory": category,
        }
        if media_urn:
            share["media"] = [{"status": "READY", "media": media_urn}]

        payload = {
            "author": author,
            "lifecycleState": "PUBLISHED",
            "specificContent": {"com.linkedin.ugc.ShareContent": share},
            "visibility": {"com.linkedin.ugc.MemberNetworkVisibility": "PUBLIC"},
        }
        with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
            r = c.post(
                UGC_URL,
                headers={**self._headers(restli=True), "Content-Type": "application/json"},
                json=payload,
            )
        if r.status_code not in (200, 201, 202):
            raise error_from_response(r, "Failed to publish post")
        post_id = r.headers.get("x-restli-id")
        if not post_id:
            post_id = response_json(r, "publish post").get("id")
        if not post_id:
            raise LinkedInAPIError(r.status_code, "LinkedIn did not return a post id", log_request_id(r))
        return post_id

    # --- organizations ---

    def get_accessible_organizations(self) -> List[Dict[str, Any]]:
        url = f"{API_BASE}/organizationAcls"
        params = {"q": "roleAssignee", "role": "ADMINISTRATOR", "state": "APPROVED"}
        with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
            r = c.get(url, headers=self._headers(), params=params)
            if r.status_code in (401, 403):
                return []
            if r.status_code != 200:
                raise error_from_response(r, "Failed to list organizations")

            orgs = []
            for element in response_json(r, "list organizations").get("elements", []):
                urn = element.get("organization", "")
                m = re.match(r"urn:li:organization:(\d+)", urn)
                org_id = m.group(1) if m else urn
                detail = c.get(f"{API_BASE}/organizations/{org_id}", headers=self._headers())
                if detail.status_code != 200:
                    logger.warning("Could not load organization %s: %s", org_id, detail.status_code)
                    continue
                try:
                    d = response_json(detail, f"load organization {org_id}")
                except LinkedInAPIError as e:
                    logger.warning("Could not read organization %s: %s", org_id, e.message)
                    continue
                orgs.append({
                    "id": str(d.get("id", org_id)),
                    "name": d.get("localizedName") or d.get("name") or f"Organization {org_id}",
                    "vanity_name": d.get("vanityName"),
                    "logo_url": (d.get("logoV2") or {}).get("original") or d.get("logoUrl"),
                })
        return orgs

    # --- analytics ---

    def get_post_metrics(self, post_id: str, organization_id: Optional[str] = None) -> PostMetrics:
        if organization_id:
            return self._organization_post_metrics(post_id, organization_id)
        return self._personal_post_metrics(post_id)

    def _personal_post_metrics(self, post_id: str) -> PostMetrics:
        counts: Dict[str, int] = {}
        with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
            for query_type in PERSONAL_METRIC_QUERY_TYPES:
                url = (
                    f"{REST_BASE}/memberCreatorPostAnalytics?q=entity"
                    f"&entity=(share:{quote(post_id, safe='')})&queryType={query_type}"
                )
                try:
                    r = c.get(url, headers=self._headers(restli=True, versioned=True))
                except httpx.HTTPError as e:
                    logger.warning("Error fetching %s metrics for %s: %s", query_type, post_id, e)
                    counts[query_type] = 0
                    continue
                if r.status_code != 200:
                    log_request_id(r)
                    logger.warning("Failed to fetch %s metrics for %s: %s", query_type, post_id, r.status_code)
                    counts[query_type] = 0
                    continue
                try:
                    elements = response_json(r, f"read {query_type} metrics").get("elements") or []
                except LinkedInAPIError as e:
                    logger.warning("Unreadable %s metrics for %s: %s", query_type, post_id, e.message)
                    counts[query_type] = 0
                    continue
                counts[query_type] = int(elements[0].get("count") or 0) if elements else 0

        return PostMetrics(
            impressions=counts.get("IMPRESSION", 0),
            likes=counts.get("REACTION", 0),
            comments=counts.get("COMMENT", 0),
            shares=counts.get("RESHARE", 0),
            # closest available signal to clicks for member posts
            clicks=counts.get("MEMBERS_REACHED", 0),
        )

    def _organization_post_metrics(self, post_id: str, organization_id: str) -> PostMetrics:
        url = (
            f"{REST_BASE}/organizationalEntityShareStatistics?q=organizationalEntity"
            f"&organizationalEntity=urn%3Ali%3Aorganization%3A{organization_id}"
            f"&shares=List({quote(post_id, safe='')})"
        )
        with httpx.Client(timeout=DEFAULT_TIMEOUT) as c:
            r = c.get(url, headers=self._headers(restli=True, versioned=True))
        if r.status_code != 200:
            raise error_from_response(r, "Failed to get organization post metrics")
        elements = response_json(r, "read organization post metrics").get("elements") or []
        stats = (elements[0].get("totalShareStatistics") if elements else None) or {}
        return PostMetrics(
            impressions=int(stats.get("impressionCount") or 0),
            likes=int(stats.get("likeCount") or 0),
            comments=int(stats.get("commentCount") or 0),
            shares=int(stats.get("shareCount") or 0),
            clicks=int(stats.get("clickCount") or 0),
        )
