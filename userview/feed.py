"""Combine a profile's comments and posts into one feed."""
from typing import List, Sequence

from .data_models import Comment, FeedItem, Post, SortType, View


def merge_feed(comments: Sequence[Comment], posts: Sequence[Post], sort: SortType) -> List[FeedItem]:
    """Tag, concatenate and sort newest or highest scoring first.

    `published` is an ISO-8601 string so plain string comparison orders it.
    Order among equal keys is not guaranteed.
    """
    combined = [FeedItem("comments", c) for c in comments]
    combined.extend(FeedItem("posts", p) for p in posts)

    if sort == SortType.New:
        combined.sort(key=lambda item: item.data.published or "", reverse=True)
    else:
        combined.sort(key=lambda item: item.data.score or 0, reverse=True)
    return combined


def feed_for_view(view: View, comments: Sequence[Comment], posts: Sequence[Post], sort: SortType) -> List[FeedItem]:
    if view == View.Comments:
        return [FeedItem("comments", c) for c in comments]
    if view == View.Posts:
        return [FeedItem("posts", p) for p in posts]
    # Overview and Saved both show the merged listing
    return merge_feed(comments, posts, sort)
