"""
Order Service / エラー定義

呼び出し元が「入力が不正」「見る権限がない」「処理を完了できなかった」を
区別できるよう、失敗理由ごとに例外クラスを分ける。
status_code は HTTP 層がそのままレスポンスに使う。
"""


class OrderServiceError(Exception):
    """Order Service の全例外の基底クラス"""

    status_code: int = 500

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__


class NotFound(OrderServiceError):
    """参照した注文が存在しない"""

    status_code = 404


class Forbidden(OrderServiceError):
    """注文の所有者とリクエストしたユーザーが一致しない"""

    status_code = 403


class InvalidRequest(OrderServiceError):
    """遷移先ステータスや数量が不正"""

    status_code = 400


class TransitionConflict(OrderServiceError):
    """
    終端状態からの遷移、または同一注文への同時遷移に負けた。

    条件付き UPDATE が 0 行だった場合もこれになる。
    """

    status_code = 409


class PersistenceError(OrderServiceError):
    """ローカル DB の失敗（制約違反・接続断など）"""

    status_code = 500


class GatewayError(OrderServiceError):
    """在庫サービス呼び出しの失敗（タイムアウト・非 2xx・不正なボディ）"""

    status_code = 502
