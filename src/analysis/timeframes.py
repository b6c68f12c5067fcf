"""日足を週足・月足へ集約するユーティリティ。"""
from __future__ import annotations

import pandas as pd

from domain.models import PRICE_COLUMNS, Granularity


def aggregate(daily: pd.DataFrame, granularity: Granularity | str) -> pd.DataFrame:
    """日足 DataFrame を週足または月足へ集約する。

    - 週足: ISO-8601 の (年, 週番号)。週はその木曜日を含む年に属する。
    - 月足: (年, 月)。
    - キーが前の行から変わった時点で新しいバケットを開始し、入力順を保つ。
    - open=最初の始値, close=最後の終値, high=最大, low=最小, volume=合計。
      日付はバケット最初の日付を使う。
    """
    granularity = Granularity(granularity)
    if daily.empty:
        return pd.DataFrame(columns=list(PRICE_COLUMNS))

    dates = pd.to_datetime(daily["date"])
    if granularity is Granularity.WEEKLY:
        iso = dates.dt.isocalendar()
        key = iso["year"].astype("int64") * 100 + iso["week"].astype("int64")
    else:
        key = dates.dt.year * 100 + dates.dt.month
    key = key.reset_index(drop=True)
    bucket = (key != key.shift()).cumsum()

    frame = daily.reset_index(drop=True).assign(date=dates.reset_index(drop=True))
    grouped = frame.groupby(bucket.to_numpy(), sort=False)
    out = grouped.agg(
        date=("date", "first"),
        open=("open", "first"),
        high=("high", "max"),
        low=("low", "min"),
        close=("close", "last"),
        volume=("volume", "sum"),
    )
    return out.reset_index(drop=True)


def weekly(daily: pd.DataFrame) -> pd.DataFrame:
    return aggregate(daily, Granularity.WEEKLY)


def monthly(daily: pd.DataFrame) -> pd.DataFrame:
    return aggregate(daily, Granularity.MONTHLY)
