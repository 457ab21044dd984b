"""Script-evaluation extractor for old-style Reddit listing and comment pages."""

import logging
from typing import Any, List, Optional

from community_crawler.exceptions import ExtractionError
from community_crawler.extraction.base import ItemFields, ListingEntry, ReplyFields
from community_crawler.transport.base import Transport

logger = logging.getLogger(__name__)

LISTING_JS = r"""
() => {
  const out = [];
  document.querySelectorAll('div#siteTable div.thing.link').forEach(el => {
    const fn = el.getAttribute('data-fullname') || '';
    const id = fn.startsWith('t3_') ? fn.slice(3) : null;
    const c = el.querySelector('a.comments');
    const ts = el.getAttribute('data-timestamp');
    if (id) out.push({id: id, href: c ? c.href : null, ts: ts ? Math.floor(parseInt(ts) / 1000) : null});
  });
  return out;
}
"""

ITEM_JS = r"""
() => {
  function text(el) { return el ? (el.textContent || '').trim() : null; }
  function digits(s) { if (!s) return null; const m = (s.match(/\d[\d,]*/) || [])[0]; return m ? parseInt(m.replace(/,/g, '')) : null; }
  function ts(el) { return el && el.dateTime ? Math.floor(Date.parse(el.dateTime) / 1000) : null; }
  const res = {title: null, author: null, score: null, created_utc: null, selftext: null, num_comments: null, images: [], comments: []};
  const main = document.querySelector('div#siteTable div.thing.link');
  if (main) {
    res.title = text(main.querySelector('a.title'));
    res.author = text(main.querySelector('a.author'));
    const sc = main.querySelector('div.score');
    res.score = digits(sc ? (sc.getAttribute('title') || sc.textContent) : null);
    res.created_utc = ts(main.querySelector('time'));
    res.num_comments = digits(text(main.querySelector('a.comments')));
    res.selftext = text(main.querySelector('div.expando div.usertext div.usertext-body'));
    const imgs = new Set();
    ['div.expando img', 'a.thumbnail img', 'div.expando a[rel="nofollow"] img'].forEach(sel => {
      main.querySelectorAll(sel).forEach(img => { const u = img.getAttribute('src') || ''; if (u && !u.startsWith('data:')) imgs.add(u); });
    });
    main.querySelectorAll('div.expando a').forEach(a => {
      const h = a.getAttribute('href') || '';
      if (/\.(jpg|jpeg|png|gif)$/i.test(h)) imgs.add(h);
    });
    if (imgs.size === 0) {
      document.querySelectorAll('div.content img').forEach(img => {
        const u = img.getAttribute('src') || '';
        if (u && !u.startsWith('data:') && !/emoji/i.test(u)) imgs.add(u);
      });
    }
    res.images = Array.from(imgs);
  }
  document.querySelectorAll('div.sitetable.nestedlisting div.thing.comment').forEach(c => {
    const fn = c.getAttribute('data-fullname') || '';
    const id = fn.startsWith('t1_') ? fn.slice(3) : null;
    if (!id) return;
    const score = digits(text(c.querySelector('span.score.unvoted')) || text(c.querySelector('span.score')));
    res.comments.push({
      id: id,
      parent_fullname: c.getAttribute('data-parent') || null,
      author: text(c.querySelector('a.author')),
      body: text(c.querySelector('div.entry div.usertext-body')),
      score: score,
      created_utc: ts(c.querySelector('time')),
    });
  });
  return res;
}
"""

NEXT_PAGE_JS = "() => (document.querySelector('span.next-button > a') || {}).href || null"


def _as_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _as_str(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


class OldRedditExtractor:
    """Extracts listings, item fields and reply trees from old.reddit.com markup."""

    def __init__(self, base_url: str = "https://old.reddit.com", listing_path: str = "/r/{community}/top/?t=day"):
        self.base_url = base_url.rstrip("/")
        self.listing_path = listing_path

    def listing_url(self, community: str) -> str:
        return self.base_url + self.listing_path.format(community=community)

    def item_url(self, item_id: str) -> str:
        return f"{self.base_url}/comments/{item_id}/"

    async def listing(self, transport: Transport) -> List[ListingEntry]:
        raw = await transport.evaluate(LISTING_JS)
        if not isinstance(raw, list):
            raise ExtractionError(f"listing script returned {type(raw).__name__}")
        entries = []
        for entry in raw:
            if not isinstance(entry, dict) or not _as_str(entry.get("id")):
                continue
            entries.append(
                ListingEntry(
                    item_id=entry["id"],
                    url=_as_str(entry.get("href")),
                    created_at=_as_int(entry.get("ts")),
                )
            )
        return entries

    async def item(self, transport: Transport) -> ItemFields:
        raw = await transport.evaluate(ITEM_JS)
        if not isinstance(raw, dict):
            raise ExtractionError(f"item script returned {type(raw).__name__}")

        replies = []
        for comment in raw.get("comments") or []:
            if not isinstance(comment, dict) or not _as_str(comment.get("id")):
                continue
            replies.append(
                ReplyFields(
                    id=comment["id"],
                    parent_ref=_as_str(comment.get("parent_fullname")),
                    author=_as_str(comment.get("author")),
                    body=_as_str(comment.get("body")),
                    score=_as_int(comment.get("score")),
                    created_at=_as_int(comment.get("created_utc")),
                )
            )

        return ItemFields(
            title=_as_str(raw.get("title")),
            author=_as_str(raw.get("author")),
            score=_as_int(raw.get("score")),
            created_at=_as_int(raw.get("created_utc")),
            body=_as_str(raw.get("selftext")),
            reply_count=_as_int(raw.get("num_comments")),
            media_urls=[u for u in raw.get("images") or [] if isinstance(u, str)],
            replies=replies,
        )

    async def next_page(self, transport: Transport) -> Optional[str]:
        href = await transport.evaluate(NEXT_PAGE_JS)
        return href if isinstance(href, str) and href else None
