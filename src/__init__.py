"""audit-ledger — 改ざん検知可能な監査ハッシュチェーン"""

__version__ = "0.1.0"
