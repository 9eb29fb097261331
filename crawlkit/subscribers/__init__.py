"""Subscribers shipped with crawlkit."""

from crawlkit.subscribers.broken_link_checker import BrokenLinkCheckerSubscriber
from crawlkit.subscribers.html_crawler import HtmlCrawlerSubscriber
from crawlkit.subscribers.robots import RobotsSubscriber

__all__ = [
    "BrokenLinkCheckerSubscriber",
    "HtmlCrawlerSubscriber",
    "RobotsSubscriber",
]
