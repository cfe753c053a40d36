"""
NextSkip主入口
启动数据刷新调度器、缓存刷新worker和Dashboard API
"""

import asyncio

import uvicorn
from loguru import logger

from nextskip.app import Application
from nextskip.datastore.engine import close_db, init_db
from nextskip.services.client import close_service_client
from nextskip.settings import global_settings


async def main() -> None:
    """主函数"""
    logger.info("Starting NextSkip...")
    app: Application | None = None

    try:
        # 初始化数据库
        logger.info("Initializing database...")
        await init_db()
        logger.info("Database initialized successfully")

        # 启动调度器，冷启动时立即刷新空数据源
        app = Application()
        await app.start()

        # 启动API服务
        config = uvicorn.Config(
            app.api,
            host=global_settings.api_host,
            port=global_settings.api_port,
            log_level="info",
        )
        logger.info(
            f"NextSkip is running on {global_settings.api_host}:{global_settings.api_port}. "
            "Press Ctrl+C to stop."
        )
        await uvicorn.Server(config).serve()

    except KeyboardInterrupt:
        logger.info("Received interrupt signal, shutting down...")
    except Exception as e:
        logger.error(f"Error in main loop: {e}")
    finally:
        # 清理资源
        if app is not None:
            await app.stop()

        await close_service_client()

        logger.info("Closing database connections...")
        await close_db()

        logger.info("NextSkip stopped")


if __name__ == "__main__":
    asyncio.run(main())
