"""Exchange Session Meta information.
   Exchange Session keeps exchange API credentials encrypted behind
   an opaque session token.
"""
__title__ = 'exchange_session'
__description__ = (
   'Exchange Session keeps exchange API credentials encrypted '
   'behind an opaque session token.'
)
__version__ = '0.1.0'
__copyright__ = 'Copyright (c) 2023 Jesus Lara'
__author__ = 'Jesus Lara'
__author_email__ = 'jesuslarag@gmail.com'
__license__ = 'Apache-2.0'
