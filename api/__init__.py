"""
API 層

FastAPI routers，只負責把業務異常轉成 HTTP 狀態碼：
- admin：選項分配、配對管理
- rounds：隊伍查詢與選擇
"""
