"""一括登録の集計結果"""

from dataclasses import dataclass, field
from typing import Any, Dict, List


@dataclass
class BatchResult:
    """一括登録の結果（例外は送出せず、ここに全て集計する）"""
    success_count: int = 0
    failed_count: int = 0
    errors: List[Dict[str, Any]] = field(default_factory=list)

    def add_success(self, count: int = 1) -> None:
        self.success_count += count

    def add_failure(self, error: str, count: int = 1, **context: Any) -> None:
        """失敗を記録する。context には対象レコードやチャンク範囲を渡す"""
        self.failed_count += count
        self.errors.append({**context, "error": error})

    def merge(self, other: "BatchResult") -> None:
        self.success_count += other.success_count
        self.failed_count += other.failed_count
        self.errors.extend(other.errors)

    @property
    def total(self) -> int:
        return self.success_count + self.failed_count

    def to_dict(self) -> Dict[str, Any]:
        """API 返却形式に変換"""
        return {
            "successCount": self.success_count,
            "failedCount": self.failed_count,
            "errors": self.errors,
        }
